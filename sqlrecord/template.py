"""
Named-parameter SQL templates.

:meth:`SqlTemplate.parse` scans SQL text once, character by character, and
replaces every ``:name`` token outside quoted literals and comments with the
positional placeholder of the target driver's DB-API ``paramstyle``::

    >>> t = SqlTemplate.parse("SELECT * FROM hero WHERE name = :name OR alias = :name")
    >>> t.text
    'SELECT * FROM hero WHERE name = %s OR alias = %s'
    >>> t.names
    ('name', 'name')

Skipped without looking for tokens: ``'...'`` and ``"..."`` literals (``''``
escapes, plus ``\\'`` escapes in PostgreSQL ``E'...'`` strings or everywhere
with ``backslash_escapes=True`` as on MySQL), PostgreSQL ``$$...$$`` and
``$tag$...$tag$`` bodies, ``--`` and ``/* */`` comments. PostgreSQL
``::type`` casts are never parameters.

A marker not followed by an identifier (``a[1:2]``, ``:=``, ``:1``) is passed
through verbatim unless ``strict=True``, in which case it raises
:exc:`MalformedTemplate`. With the ``numeric`` paramstyle a marker followed by
a digit always raises, since the driver would read it as a placeholder.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from sqlrecord.exceptions import MalformedTemplate

MARKER = ":"
PARAMSTYLES = ("format", "pyformat", "qmark", "numeric")

_NAME = re.compile(r"[A-Za-z][A-Za-z0-9_]*")
_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")


def _placeholder(paramstyle: str, position: int) -> str:
    if paramstyle in ("format", "pyformat"):
        return "%s"
    if paramstyle == "qmark":
        return "?"
    return f":{position}"


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch in ("_", "$")


def _quoted_end(sql: str, start: int, backslash: bool = False) -> int:
    """Return the offset just past the literal opened at ``start``.

    A doubled quote character is an escaped quote; with ``backslash`` a
    backslash escapes the character after it. An unterminated literal runs
    to the end of the text.
    """
    quote = sql[start]
    i = start + 1
    length = len(sql)
    while i < length:
        if backslash and sql[i] == "\\":
            i += 2
            continue
        if sql[i] == quote:
            if i + 1 < length and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return length


def _escape_string_prefix(sql: str, start: int) -> bool:
    """True if the quote at ``start`` opens a PostgreSQL ``E'...'`` string."""
    if start == 0 or sql[start - 1] not in ("E", "e"):
        return False
    return start == 1 or not _is_word_char(sql[start - 2])


@dataclass(frozen=True)
class SqlTemplate:
    """
    Parsed form of a SQL string.

    ``text`` is the driver-ready statement; the Nth placeholder in it is bound
    to ``names[N]``. A name used several times appears once per occurrence.
    """

    sql: str
    text: str
    names: Tuple[str, ...]
    paramstyle: str = "format"

    @property
    def distinct_names(self) -> Tuple[str, ...]:
        """Distinct parameter names in first-occurrence order."""
        return tuple(dict.fromkeys(self.names))

    @property
    def placeholder_count(self) -> int:
        return len(self.names)

    @classmethod
    def parse(
        cls,
        sql: str,
        paramstyle: str = "format",
        strict: bool = False,
        backslash_escapes: bool = False,
    ) -> "SqlTemplate":
        """
        Parse ``sql`` for ``:name`` tokens.

        Args:
            sql: Non-empty SQL text.
            paramstyle: DB-API paramstyle of the driver the text is for.
            strict: Raise :exc:`MalformedTemplate` on a stray marker instead
                of passing it through.
            backslash_escapes: Treat ``\\`` as an escape inside every quoted
                literal (MySQL's default); otherwise only in ``E'...'`` strings.
        Raises:
            ValueError: Empty text or unsupported paramstyle.
            MalformedTemplate: Stray marker in strict mode, or a marker
                followed by a digit with the ``numeric`` paramstyle.
        """
        if not sql or not sql.strip():
            raise ValueError("SQL text must not be empty")
        if paramstyle not in PARAMSTYLES:
            raise ValueError(
                f"Unsupported paramstyle {paramstyle!r}, expected one of {PARAMSTYLES}"
            )

        # the driver runs %-formatting over the whole text for these styles
        escape_percent = paramstyle in ("format", "pyformat")
        out = []
        names = []
        i = 0
        length = len(sql)

        def emit(chunk: str) -> None:
            out.append(chunk.replace("%", "%%") if escape_percent else chunk)

        while i < length:
            ch = sql[i]

            if ch in ("'", '"'):
                backslash = backslash_escapes or (ch == "'" and _escape_string_prefix(sql, i))
                end = _quoted_end(sql, i, backslash)
                emit(sql[i:end])
                i = end
                continue

            if ch == "$" and (i == 0 or not _is_word_char(sql[i - 1])):
                tag = _DOLLAR_TAG.match(sql, i)
                if tag:
                    end = sql.find(tag.group(), tag.end())
                    end = length if end == -1 else end + len(tag.group())
                    emit(sql[i:end])
                    i = end
                    continue

            if ch == "-" and sql.startswith("--", i):
                end = sql.find("\n", i)
                end = length if end == -1 else end
                emit(sql[i:end])
                i = end
                continue

            if ch == "/" and sql.startswith("/*", i):
                end = sql.find("*/", i + 2)
                end = length if end == -1 else end + 2
                emit(sql[i:end])
                i = end
                continue

            if ch == MARKER:
                if sql.startswith("::", i):
                    emit("::")
                    i += 2
                    continue
                match = _NAME.match(sql, i + 1)
                if match:
                    names.append(match.group())
                    out.append(_placeholder(paramstyle, len(names)))
                    i = match.end()
                    continue
                # :2 would be read as a placeholder by a numeric-style driver
                if strict or (paramstyle == "numeric" and sql[i + 1 : i + 2].isdigit()):
                    raise MalformedTemplate(sql, i)

            emit(ch)
            i += 1

        return cls(sql=sql, text="".join(out), names=tuple(names), paramstyle=paramstyle)


@lru_cache(maxsize=1024)
def parse_template(
    sql: str, paramstyle: str = "format", strict: bool = False, backslash_escapes: bool = False
) -> SqlTemplate:
    """Cached :meth:`SqlTemplate.parse`, keyed by the literal SQL text and options."""
    return SqlTemplate.parse(
        sql, paramstyle=paramstyle, strict=strict, backslash_escapes=backslash_escapes
    )

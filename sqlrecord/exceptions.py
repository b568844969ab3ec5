"""
Typed error conditions raised by sqlrecord.

Every condition derives from :class:`SqlRecordError` and carries the names
needed to diagnose the failure (parameter, column, field, type names)
without re-running the statement.
"""

from typing import Any, Optional


def _type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


class SqlRecordError(Exception):
    """Base class for all sqlrecord errors."""


class MalformedTemplate(SqlRecordError):
    """A marker character is not followed by a valid parameter name."""

    def __init__(self, sql: str, position: int):
        self.sql = sql
        self.position = position
        snippet = sql[position : position + 20]
        super().__init__(
            f"Stray parameter marker at offset {position}: {snippet!r}"
        )


class MissingParameter(SqlRecordError):
    """The binding source has no value for a name the template requires."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No binding supplied for parameter :{name}")


class UnmappableType(SqlRecordError):
    """The target type has no declared shape that rows can be mapped onto."""

    def __init__(self, target_type: Any, reason: str):
        self.target_type = target_type
        self.reason = reason
        super().__init__(f"Cannot map rows to {_type_name(target_type)}: {reason}")


class MissingColumn(SqlRecordError):
    """A declared field has no matching column in the actual result."""

    def __init__(self, target_type: Any, field: str, column: str, available: Any = ()):
        self.target_type = target_type
        self.field = field
        self.column = column
        self.available = tuple(available)
        super().__init__(
            f"{_type_name(target_type)}.{field} expects column {column!r}, "
            f"result has {list(self.available)}"
        )


class TypeCoercionError(SqlRecordError):
    """A column value cannot be converted to the field's declared type."""

    def __init__(self, column: str, source_type: Any, target_type: Any, value: Any = None):
        self.column = column
        self.source_type = source_type
        self.target_type = target_type
        self.value = value
        super().__init__(
            f"Column {column!r}: cannot convert {_type_name(source_type)} "
            f"value {value!r} to {_type_name(target_type)}"
        )


class MultipleResultsError(SqlRecordError):
    """A single-row query matched more than one row."""

    def __init__(self, sql: str, count: int):
        self.sql = sql
        self.count = count
        super().__init__(f"Expected at most one row, got {count}")


class ExecutionError(SqlRecordError):
    """The driver or store failed while running a statement."""

    def __init__(self, sql: str, cause: BaseException, index: Optional[int] = None):
        self.sql = sql
        self.cause = cause
        self.index = index
        where = f" (statement #{index})" if index is not None else ""
        super().__init__(f"Statement failed{where}: {cause}")

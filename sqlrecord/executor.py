"""
Statement execution façade.

:class:`Executor` ties the pieces together for each call: parse the SQL
(:mod:`sqlrecord.template`), bind values (:mod:`sqlrecord.binder`), run the
statement on the caller's connection and, for queries, map rows
(:mod:`sqlrecord.type_mapper`).

The executor never opens, commits, rolls back or closes a connection. Its
unit of work is one statement, or one ordered batch for
:meth:`Executor.execute_all`; callers wanting all-or-nothing behaviour
wrap calls in their own transaction (see :meth:`DbUtil.transaction`).
"""

import logging
import sys
from contextlib import closing
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

import pandas as pd
import psycopg2 as psycopg

from sqlrecord.binder import AccessorsLike, ParameterBinder
from sqlrecord.config import ExecutorConfig
from sqlrecord.db_util import DbUtil
from sqlrecord.exceptions import ExecutionError, MultipleResultsError
from sqlrecord.template import PARAMSTYLES, SqlTemplate, parse_template
from sqlrecord.type_mapper import TypeMapper, TypeMetadata

logger = logging.getLogger("sqlrecord.executor")

T = TypeVar("T")
R = TypeVar("R")

# DB-API modules whose servers treat backslash as an escape in string literals
_BACKSLASH_DRIVERS = ("MySQLdb", "pymysql", "mysql")


def _driver_module(connection: Any) -> str:
    if isinstance(connection, DbUtil):
        return psycopg.__name__
    return type(connection).__module__.split(".")[0]


def detect_paramstyle(connection: Any, default: str = "format") -> str:
    """Return the DB-API ``paramstyle`` of the module ``connection`` comes from.

    A :class:`DbUtil` is not connected to find out.
    """
    paramstyle = getattr(sys.modules.get(_driver_module(connection)), "paramstyle", None)
    return paramstyle if paramstyle in PARAMSTYLES else default


def detect_backslash_escapes(connection: Any) -> bool:
    """True if ``connection`` comes from a MySQL driver."""
    return _driver_module(connection) in _BACKSLASH_DRIVERS


def _raw_connection(connection: Any) -> Any:
    if isinstance(connection, DbUtil):
        return connection.get_connection()
    return connection


class Executor:
    """
    Runs named-parameter SQL on caller-owned connections.

    ``connection`` arguments accept any open DB-API 2 connection (psycopg2,
    sqlite3, ...) or a :class:`DbUtil`. Construct one executor per
    application and share it; it only holds caches.

    Every driver failure, including a :class:`DbUtil` failing to open its
    connection, is logged and re-raised as :exc:`ExecutionError` with the
    underlying exception as its cause. Nothing is retried.
    """

    def __init__(self, config: Optional[ExecutorConfig] = None, type_mapper: Optional[TypeMapper] = None):
        self.config = config or ExecutorConfig()
        self.type_mapper = type_mapper or TypeMapper()
        self.binder = ParameterBinder()

    def register(
        self,
        target_type: Type[T],
        fields: Mapping[str, Any],
        factory: Optional[Callable[..., T]] = None,
        columns: Optional[Mapping[str, str]] = None,
    ) -> TypeMetadata:
        """Register an explicit row mapping, see :meth:`TypeMapper.register`."""
        return self.type_mapper.register(target_type, fields, factory=factory, columns=columns)

    def template(self, connection: Any, sql: str) -> SqlTemplate:
        """Parse ``sql`` for the driver behind ``connection``."""
        paramstyle = self.config.paramstyle or detect_paramstyle(connection)
        backslash_escapes = self.config.backslash_escapes
        if backslash_escapes is None:
            backslash_escapes = detect_backslash_escapes(connection)
        return parse_template(sql, paramstyle, self.config.strict_templates, backslash_escapes)

    def _run(
        self, connection: Any, template: SqlTemplate, args: Tuple[Any, ...], fetch: bool
    ) -> Tuple[List[str], List[Sequence[Any]], int]:
        try:
            raw = _raw_connection(connection)
            with closing(raw.cursor()) as cursor:
                cursor.execute(template.text, args)

                if self.config.log_statements:
                    logger.info("Query executed: %s (%d parameters)", template.text, len(args))

                if not fetch or cursor.description is None:
                    return [], [], cursor.rowcount

                columns = [desc[0] for desc in cursor.description]
                return columns, list(cursor.fetchall()), cursor.rowcount

        except Exception as error:
            logger.error("DB: Error executing statement: %s", template.sql, exc_info=True)
            raise ExecutionError(template.sql, error) from error

    def query(
        self,
        record_type: Type[T],
        connection: Any,
        sql: str,
        bindings: Optional[Mapping[str, Any]] = None,
    ) -> List[T]:
        """
        Run a query and map every row to ``record_type``.

        Returns:
            Records in result order; ``[]`` for an empty result.
        Raises:
            MissingParameter, MissingColumn, TypeCoercionError, UnmappableType,
            ExecutionError
        """
        template = self.template(connection, sql)
        args = self.binder.bind(template, bindings)
        self.type_mapper.metadata_for(record_type)
        columns, rows, _ = self._run(connection, template, args, fetch=True)
        return self.type_mapper.map_rows(columns, rows, record_type)

    def query_single(
        self,
        record_type: Type[T],
        connection: Any,
        sql: str,
        bindings: Optional[Mapping[str, Any]] = None,
    ) -> Optional[T]:
        """
        Run a query expected to match at most one row.

        Returns:
            The mapped record, or None when nothing matched.
        Raises:
            MultipleResultsError: More than one row matched.
        """
        template = self.template(connection, sql)
        args = self.binder.bind(template, bindings)
        self.type_mapper.metadata_for(record_type)
        columns, rows, _ = self._run(connection, template, args, fetch=True)
        if not rows:
            return None
        if len(rows) > 1:
            raise MultipleResultsError(sql, len(rows))
        return self.type_mapper.map_row(columns, rows[0], record_type)

    def query_mapped(
        self,
        connection: Any,
        sql: str,
        mapper: Callable[[Mapping[str, Any]], R],
        bindings: Optional[Mapping[str, Any]] = None,
    ) -> List[R]:
        """Run a query and apply ``mapper`` to each row, given as a column -> value dict."""
        template = self.template(connection, sql)
        args = self.binder.bind(template, bindings)
        columns, rows, _ = self._run(connection, template, args, fetch=True)
        return [mapper(dict(zip(columns, row))) for row in rows]

    def query_frame(
        self,
        connection: Any,
        sql: str,
        bindings: Optional[Mapping[str, Any]] = None,
    ) -> pd.DataFrame:
        """Run a query and return the result as a :class:`pandas.DataFrame`."""
        template = self.template(connection, sql)
        args = self.binder.bind(template, bindings)
        columns, rows, _ = self._run(connection, template, args, fetch=True)
        return pd.DataFrame([tuple(row) for row in rows], columns=columns)

    def execute(
        self,
        connection: Any,
        sql: str,
        bindings: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """
        Run a statement with name -> value bindings.

        Returns:
            The affected-row count reported by the driver (0 is not an error).
        """
        template = self.template(connection, sql)
        args = self.binder.bind(template, bindings)
        _, _, rowcount = self._run(connection, template, args, fetch=False)
        return rowcount

    def execute_instance(
        self,
        record_type: Type[T],
        connection: Any,
        sql: str,
        instance: T,
        accessors: AccessorsLike,
    ) -> int:
        """
        Run a statement whose values are read from ``instance`` through ``accessors``.

        ``accessors`` is an :class:`~sqlrecord.binder.Accessors` table for
        ``record_type`` or a plain name -> callable mapping.
        """
        table = self.binder.accessors_for(record_type, accessors)
        template = self.template(connection, sql)
        args = self.binder.bind_instance(template, instance, table)
        _, _, rowcount = self._run(connection, template, args, fetch=False)
        return rowcount

    def execute_all(
        self,
        record_type: Type[T],
        connection: Any,
        sql: str,
        instances: Iterable[T],
        accessors: AccessorsLike,
    ) -> List[int]:
        """
        Run one statement per instance, in input order.

        All instances are bound before anything is sent, so binding errors
        leave the store untouched. Statements then run one by one on a single
        cursor; the first driver failure stops the batch and raises
        :exc:`ExecutionError` whose ``index`` names the failing instance.
        Statements already run are not undone: the batch is not atomic
        unless the caller runs it inside a transaction.

        Returns:
            One affected-row count per instance, in input order.
        """
        table = self.binder.accessors_for(record_type, accessors)
        template = self.template(connection, sql)
        batch = [self.binder.bind_instance(template, instance, table) for instance in instances]
        if not batch:
            return []

        counts: List[int] = []
        try:
            raw = _raw_connection(connection)
            with closing(raw.cursor()) as cursor:
                for args in batch:
                    cursor.execute(template.text, args)
                    counts.append(cursor.rowcount)
        except Exception as error:
            index = len(counts)
            logger.error(
                "DB: Error executing statement #%d of %d: %s",
                index,
                len(batch),
                template.sql,
                exc_info=True,
            )
            raise ExecutionError(template.sql, error, index=index) from error

        if self.config.log_statements:
            logger.info("Query executed %d times: %s", len(batch), template.text)
        return counts

"""
sqlrecord: a micro-ORM for hand-written SQL with named parameters and immutable records.

Example::

    import uuid
    from dataclasses import dataclass
    from typing import Optional

    from sqlrecord import DbUtil, get_instance

    @dataclass(frozen=True)
    class SuperHero:
        id: uuid.UUID
        name: str
        age: Optional[int]

    executor = get_instance()
    with DbUtil() as db:
        batman = executor.query_single(
            SuperHero, db, "SELECT * FROM super_heroes WHERE name = :name", {"name": "Batman"}
        )
"""

__version__ = "0.1.0"

from sqlrecord.binder import Accessors, ParameterBinder
from sqlrecord.config import ExecutorConfig
from sqlrecord.db_util import DbUtil
from sqlrecord.exceptions import (
    ExecutionError,
    MalformedTemplate,
    MissingColumn,
    MissingParameter,
    MultipleResultsError,
    SqlRecordError,
    TypeCoercionError,
    UnmappableType,
)
from sqlrecord.executor import Executor
from sqlrecord.registry import get_instance
from sqlrecord.template import SqlTemplate, parse_template
from sqlrecord.type_mapper import Column, ColumnMetadata, TypeMapper

__all__ = [
    "Accessors",
    "Column",
    "ColumnMetadata",
    "DbUtil",
    "ExecutionError",
    "Executor",
    "ExecutorConfig",
    "MalformedTemplate",
    "MissingColumn",
    "MissingParameter",
    "MultipleResultsError",
    "ParameterBinder",
    "SqlRecordError",
    "SqlTemplate",
    "TypeCoercionError",
    "TypeMapper",
    "UnmappableType",
    "get_instance",
    "parse_template",
    "__version__",
]

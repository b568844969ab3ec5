"""
Row to record mapping.

:class:`TypeMapper` turns result rows into instances of immutable record
types. The shape of a record type is read from what the type itself declares:

* ``dataclasses`` (frozen or not): ``dataclasses.fields`` and their type hints;
  ``field(metadata={"column": "..."})`` overrides the column name.
* ``typing.NamedTuple``: ``_fields`` and their type hints.
* pydantic models: ``model_fields``; :func:`Column` overrides the column name.
* anything else, through :meth:`TypeMapper.register`.

The derived :class:`TypeMetadata` (field order, expected column, coercion
target) is built once per type and cached for the life of the mapper.
Columns are matched case-insensitively. Values are converted with
:func:`coerce_value`, which raises :exc:`TypeCoercionError` instead of
truncating or defaulting.
"""

import dataclasses
import datetime
import json
import logging
import threading
import types
import uuid
from decimal import Decimal
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from pydantic import BaseModel, Field

from sqlrecord.exceptions import MissingColumn, TypeCoercionError, UnmappableType

logger = logging.getLogger("sqlrecord.type_mapper")

T = TypeVar("T")

_FAIL = object()


class ColumnMetadata(BaseModel):
    """
    Column metadata for a pydantic record field (stored in Field metadata).
    Used by :func:`Column` and read back by :class:`TypeMapper`.
    """

    name: Optional[str] = None


def Column(default: Any = ..., name: Optional[str] = None) -> Any:
    """
    Declare a pydantic record field, optionally bound to a differently named column.

    Returns a pydantic :class:`Field` carrying the column metadata. Example::

        class Battle(BaseModel, frozen=True):
            superhero: str
            battle_date: datetime.datetime = Column(name="date")
    """
    metadata_dict = ColumnMetadata(name=name).model_dump(exclude_none=True)
    return Field(default=default, json_schema_extra={"column_metadata": metadata_dict})


@dataclasses.dataclass(frozen=True)
class FieldSpec:
    """One declared field of a record type and the column that feeds it."""

    name: str
    column: str
    annotation: Any
    target: Any
    optional: bool
    argument: str

    @property
    def column_key(self) -> str:
        return self.column.lower()


@dataclasses.dataclass(frozen=True)
class TypeMetadata:
    """Cached, complete mapping description of one record type."""

    target_type: type
    fields: Tuple[FieldSpec, ...]
    factory: Callable[..., Any]
    kind: str

    def resolve(self, columns: Sequence[str]) -> Tuple[int, ...]:
        """
        Return, for each declared field, the index of its column in ``columns``.

        Exact case-insensitive matches win; a column also matches when both
        names agree once underscores are dropped (``release_date`` and
        ``releaseDate``). Extra columns are ignored.

        Raises:
            MissingColumn: A declared field has no matching column.
        """
        exact: Dict[str, int] = {}
        compact: Dict[str, int] = {}
        for index, column in enumerate(columns):
            key = str(column).lower()
            exact.setdefault(key, index)
            compact.setdefault(key.replace("_", ""), index)

        indexes = []
        for spec in self.fields:
            index = exact.get(spec.column_key)
            if index is None:
                index = compact.get(spec.column_key.replace("_", ""))
            if index is None:
                raise MissingColumn(self.target_type, spec.name, spec.column, columns)
            indexes.append(index)
        return tuple(indexes)

    def build(self, values: Sequence[Any], indexes: Sequence[int]) -> Any:
        kwargs = {
            spec.argument: coerce_value(
                values[index], spec.target, column=spec.column, optional=spec.optional
            )
            for spec, index in zip(self.fields, indexes)
        }
        return self.factory(**kwargs)


def coercion_target(annotation: Any) -> Tuple[Any, bool]:
    """
    Reduce a declared annotation to ``(target_type, optional)``.

    ``Optional[X]`` and ``X | None`` unwrap to ``X``; generic aliases reduce
    to their origin (``List[int]`` -> ``list``); anything that is not a plain
    class after that (``Any``, ``Literal``, multi-member unions) becomes
    ``Any``, meaning values pass through unchanged.
    """
    optional = False
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = get_args(annotation)
        non_none = [arg for arg in args if arg is not type(None)]
        optional = len(non_none) != len(args)
        if len(non_none) != 1:
            return Any, optional
        annotation = non_none[0]
        origin = get_origin(annotation)

    if origin is not None:
        annotation = origin
    if not isinstance(annotation, type) or annotation is object:
        return Any, optional
    return annotation, optional


def _convert(value: Any, target: type) -> Any:
    if target is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        return _FAIL

    if target is int:
        if isinstance(value, bool):
            return _FAIL
        if isinstance(value, int):
            return value
        if isinstance(value, (float, Decimal)):
            integral = int(value)
            return integral if integral == value else _FAIL
        return _FAIL

    if target is float:
        if isinstance(value, bool):
            return _FAIL
        if isinstance(value, (int, float, Decimal)):
            return float(value)
        return _FAIL

    if target is Decimal:
        if isinstance(value, bool):
            return _FAIL
        if isinstance(value, Decimal):
            return value
        if isinstance(value, int):
            return Decimal(value)
        if isinstance(value, (float, str)):
            return Decimal(str(value))
        return _FAIL

    if target is str:
        return value if isinstance(value, str) else _FAIL

    if issubclass(target, Enum):
        if isinstance(value, target):
            return value
        if isinstance(value, str):
            return target[value]
        return _FAIL

    if target is uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        if isinstance(value, str):
            return uuid.UUID(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return uuid.UUID(bytes=bytes(value))
        return _FAIL

    if target is datetime.datetime:
        if isinstance(value, datetime.datetime):
            return value
        if isinstance(value, datetime.date):
            return datetime.datetime.combine(value, datetime.time())
        if isinstance(value, str):
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            return datetime.datetime.fromisoformat(text)
        return _FAIL

    if target is datetime.date:
        if isinstance(value, datetime.datetime):
            if value.tzinfo is None and value.time() == datetime.time():
                return value.date()
            return _FAIL
        if isinstance(value, datetime.date):
            return value
        if isinstance(value, str):
            return datetime.date.fromisoformat(value.strip())
        return _FAIL

    if target is datetime.time:
        if isinstance(value, datetime.time):
            return value
        if isinstance(value, str):
            return datetime.time.fromisoformat(value.strip())
        return _FAIL

    if target is bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        return _FAIL

    if target in (dict, list):
        if isinstance(value, str):
            value = json.loads(value)
        return value if isinstance(value, target) else _FAIL

    return value if isinstance(value, target) else _FAIL


def coerce_value(value: Any, target: Any, column: str = "?", optional: bool = False) -> Any:
    """
    Convert a driver value to ``target``.

    Raises:
        TypeCoercionError: ``None`` for a non-optional field, or a value that
            cannot be converted without loss.
    """
    if value is None:
        if optional or target is Any:
            return None
        raise TypeCoercionError(column, type(None), target, None)
    if target is Any:
        return value

    try:
        result = _convert(value, target)
    except (ValueError, TypeError, KeyError, ArithmeticError) as error:
        raise TypeCoercionError(column, type(value), target, value) from error
    if result is _FAIL:
        raise TypeCoercionError(column, type(value), target, value)
    return result


def _type_hints(target_type: type) -> Dict[str, Any]:
    try:
        return get_type_hints(target_type)
    except Exception as error:
        raise UnmappableType(target_type, f"cannot resolve type hints ({error})") from error


def _field_spec(
    name: str,
    annotation: Any,
    column: Optional[str] = None,
    argument: Optional[str] = None,
) -> FieldSpec:
    target, optional = coercion_target(annotation)
    return FieldSpec(
        name=name,
        column=column or name,
        annotation=annotation,
        target=target,
        optional=optional,
        argument=argument or name,
    )


def _pydantic_column(field_info: Any) -> Optional[str]:
    extra = getattr(field_info, "json_schema_extra", None)
    if isinstance(extra, dict) and "column_metadata" in extra:
        return ColumnMetadata(**extra["column_metadata"]).name
    return None


def _check_fields(target_type: type, fields: Sequence[FieldSpec]) -> None:
    if not fields:
        raise UnmappableType(target_type, "declares no fields")
    seen: Dict[str, str] = {}
    for spec in fields:
        if spec.column_key in seen:
            raise UnmappableType(
                target_type,
                f"fields {seen[spec.column_key]!r} and {spec.name!r} both read column {spec.column!r}",
            )
        seen[spec.column_key] = spec.name


def derive_metadata(target_type: Any) -> TypeMetadata:
    """
    Build :class:`TypeMetadata` from the shape ``target_type`` declares.

    Raises:
        UnmappableType: Not a dataclass, NamedTuple or pydantic model, no
            fields, or two fields reading the same column.
    """
    if not isinstance(target_type, type):
        raise UnmappableType(target_type, "not a class")

    if dataclasses.is_dataclass(target_type):
        hints = _type_hints(target_type)
        init_fields = [f for f in dataclasses.fields(target_type) if f.init]
        fields = [
            _field_spec(f.name, hints.get(f.name, Any), column=f.metadata.get("column"))
            for f in init_fields
        ]
        kind = "dataclass"
    elif issubclass(target_type, tuple) and hasattr(target_type, "_fields"):
        hints = _type_hints(target_type)
        fields = [
            _field_spec(name, hints.get(name, Any))
            for name in target_type._fields
        ]
        kind = "namedtuple"
    elif issubclass(target_type, BaseModel):
        fields = [
            _field_spec(
                name,
                info.annotation,
                column=_pydantic_column(info),
                argument=info.alias or name,
            )
            for name, info in target_type.model_fields.items()
        ]
        kind = "pydantic"
    else:
        raise UnmappableType(
            target_type,
            "no declared fields; use a dataclass, NamedTuple or pydantic model, "
            "or register it with TypeMapper.register",
        )

    _check_fields(target_type, fields)
    return TypeMetadata(target_type=target_type, fields=tuple(fields), factory=target_type, kind=kind)


class TypeMapper:
    """
    Maps result rows to record instances, caching one :class:`TypeMetadata` per type.

    Safe for concurrent use: metadata is derived outside the lock and the
    first complete value stored for a type is the one every caller sees.
    """

    def __init__(self):
        self._metadata: Dict[type, TypeMetadata] = {}
        self._lock = threading.Lock()

    def register(
        self,
        target_type: Type[T],
        fields: Mapping[str, Any],
        factory: Optional[Callable[..., T]] = None,
        columns: Optional[Mapping[str, str]] = None,
    ) -> TypeMetadata:
        """
        Register an explicit mapping for ``target_type``.

        Args:
            target_type: Type the rows are mapped to.
            fields: Ordered field name -> declared type.
            factory: Called with one keyword argument per field; defaults to
                ``target_type``.
            columns: Optional field name -> column name overrides.
        Raises:
            UnmappableType: No fields, unknown override, non-callable factory
                or two fields reading the same column.
        """
        columns = dict(columns or {})
        unknown = set(columns) - set(fields)
        if unknown:
            raise UnmappableType(target_type, f"column overrides for undeclared fields {sorted(unknown)}")
        factory = factory or target_type
        if not callable(factory):
            raise UnmappableType(target_type, "factory is not callable")

        specs = [
            _field_spec(name, annotation, column=columns.get(name))
            for name, annotation in fields.items()
        ]
        _check_fields(target_type, specs)
        metadata = TypeMetadata(
            target_type=target_type, fields=tuple(specs), factory=factory, kind="registered"
        )
        with self._lock:
            self._metadata[target_type] = metadata
        return metadata

    def metadata_for(self, target_type: Any) -> TypeMetadata:
        """Return cached metadata for ``target_type``, deriving it on first use."""
        try:
            metadata = self._metadata.get(target_type)
        except TypeError as error:
            raise UnmappableType(target_type, "not a class") from error
        if metadata is not None:
            return metadata

        metadata = derive_metadata(target_type)
        logger.debug(
            "Derived %s mapping for %s: %s",
            metadata.kind,
            target_type.__name__,
            [(spec.name, spec.column) for spec in metadata.fields],
        )
        with self._lock:
            return self._metadata.setdefault(target_type, metadata)

    def map_row(self, columns: Sequence[str], values: Sequence[Any], target_type: Type[T]) -> T:
        """Map a single row given its column names and values."""
        metadata = self.metadata_for(target_type)
        return metadata.build(values, metadata.resolve(columns))

    def map_rows(self, columns: Sequence[str], rows: Sequence[Sequence[Any]], target_type: Type[T]) -> List[T]:
        """Map every row of a result, in order. An empty result maps to ``[]``."""
        metadata = self.metadata_for(target_type)
        if not rows:
            return []
        indexes = metadata.resolve(columns)
        return [metadata.build(row, indexes) for row in rows]

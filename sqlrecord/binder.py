"""
Positional binding of named parameters.

Values are resolved for every occurrence in a :class:`SqlTemplate` and
handed to the driver as a positional tuple; they are never formatted into
the SQL text.
"""

import operator
from types import MappingProxyType
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, Tuple, Type, TypeVar, Union

from sqlrecord.exceptions import MissingParameter
from sqlrecord.template import SqlTemplate
from sqlrecord.type_mapper import derive_metadata

T = TypeVar("T")


class Accessors(Generic[T]):
    """
    Parameter name -> accessor table for one record type.

    Build it once per type and reuse it for every instance::

        hero_params = Accessors.of(
            SuperHero, id=lambda h: h.id, name=lambda h: h.name
        )
        hero_params = Accessors.from_fields(SuperHero)  # one entry per declared field
    """

    def __init__(self, record_type: Type[T], accessors: Mapping[str, Callable[[T], Any]]):
        for name, accessor in accessors.items():
            if not callable(accessor):
                raise TypeError(f"Accessor for parameter {name!r} is not callable")
        self.record_type = record_type
        self._accessors = MappingProxyType(dict(accessors))

    @classmethod
    def of(cls, record_type: Type[T], **accessors: Callable[[T], Any]) -> "Accessors[T]":
        return cls(record_type, accessors)

    @classmethod
    def from_fields(cls, record_type: Type[T], names: Optional[Iterable[str]] = None) -> "Accessors[T]":
        """Derive attribute getters from the fields ``record_type`` declares.

        ``names`` restricts the table to a subset of the declared fields.
        """
        declared = [spec.name for spec in derive_metadata(record_type).fields]
        if names is not None:
            names = list(names)
            unknown = [name for name in names if name not in declared]
            if unknown:
                raise ValueError(f"{record_type.__name__} declares no fields {unknown}")
            declared = names
        return cls(record_type, {name: operator.attrgetter(name) for name in declared})

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._accessors)

    def __contains__(self, name: object) -> bool:
        return name in self._accessors

    def __len__(self) -> int:
        return len(self._accessors)

    def __repr__(self) -> str:
        return f"Accessors({self.record_type.__name__}, {list(self._accessors)})"

    def extract(self, instance: T, name: str) -> Any:
        try:
            accessor = self._accessors[name]
        except KeyError:
            raise MissingParameter(name) from None
        return accessor(instance)


AccessorsLike = Union[Accessors, Mapping[str, Callable[[Any], Any]]]


class ParameterBinder:
    """Resolves a template's parameter names to an ordered tuple of driver values."""

    @staticmethod
    def bind(template: SqlTemplate, bindings: Optional[Mapping[str, Any]] = None) -> Tuple[Any, ...]:
        """
        Resolve each name of ``template`` from ``bindings``, one value per occurrence.

        Extra keys are ignored; ``None`` is a legal value.

        Raises:
            MissingParameter: A required name has no entry.
        """
        if bindings is None:
            bindings = {}
        if not isinstance(bindings, Mapping):
            raise TypeError(f"Bindings must be a mapping, got {type(bindings).__name__}")

        values = []
        for name in template.names:
            if name not in bindings:
                raise MissingParameter(name)
            values.append(bindings[name])
        return tuple(values)

    @staticmethod
    def accessors_for(record_type: Type[T], accessors: AccessorsLike) -> Accessors:
        if isinstance(accessors, Accessors):
            if not issubclass(record_type, accessors.record_type):
                raise TypeError(
                    f"Accessors for {accessors.record_type.__name__} "
                    f"cannot bind {record_type.__name__}"
                )
            return accessors
        return Accessors(record_type, accessors)

    @staticmethod
    def bind_instance(template: SqlTemplate, instance: Any, accessors: Accessors) -> Tuple[Any, ...]:
        """
        Resolve each name of ``template`` by calling its accessor on ``instance``.

        Each accessor runs once per distinct name; repeats reuse the value.

        Raises:
            MissingParameter: The table has no accessor for a required name.
            TypeError: ``instance`` is not of the table's record type.
        """
        if not isinstance(instance, accessors.record_type):
            raise TypeError(
                f"Expected {accessors.record_type.__name__} instance, got {type(instance).__name__}"
            )
        resolved = {name: accessors.extract(instance, name) for name in template.distinct_names}
        return tuple(resolved[name] for name in template.names)

"""Deferred references and resource handles.

A Reference stands in for a value the provisioning engine only knows after it
has created the target resource. References are usable as attribute values
(which wires an implicit dependency) but never resolve to a concrete value at
compile time.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from tfweave.errors import UnknownReferenceTarget

if TYPE_CHECKING:
    from tfweave.validator import ValidatedAttributes

_REF_BODY = r"(?<![\w.])(?:(data)\.)?([a-z][a-z0-9]*_[a-z0-9_]+)\.([A-Za-z_][\w-]*)\.([A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)"
_WHOLE_REF = re.compile(r"^\$\{" + _REF_BODY + r"\}$")
_EMBEDDED_REF = re.compile(_REF_BODY)
_INTERPOLATION = re.compile(r"\$\{([^}]*)\}")

RESOURCE = "resource"
DATA = "data"


@dataclass(frozen=True)
class Reference:
    resource_type: str
    resource_name: str
    attribute_path: tuple[str, ...]
    mode: str = RESOURCE

    @property
    def address(self) -> str:
        base = f"{self.resource_type}.{self.resource_name}"
        return f"data.{base}" if self.mode == DATA else base

    @property
    def expression(self) -> str:
        return "${" + self.address + "." + ".".join(self.attribute_path) + "}"

    def attr(self, name: str) -> Reference:
        """Reference a nested attribute, e.g. ``bucket.output("tags").attr("Name")``."""
        return Reference(self.resource_type, self.resource_name, (*self.attribute_path, name), self.mode)

    def __str__(self) -> str:
        return self.expression

    def __bool__(self) -> bool:
        raise TypeError(
            f"{self.expression} is a deferred reference; its value is unknown until apply and cannot be branched on"
        )


def ref(resource_type: str, name: str, attribute: str) -> Reference:
    """Build a reference to ``resource_type.name.attribute`` without a handle."""
    return Reference(resource_type, name, tuple(attribute.split(".")))


def data_ref(data_type: str, name: str, attribute: str) -> Reference:
    return Reference(data_type, name, tuple(attribute.split(".")), mode=DATA)


def is_interpolation(value: Any) -> bool:
    """True for strings carrying a ``${...}`` expression."""
    return isinstance(value, str) and _INTERPOLATION.search(value) is not None


def parse_reference(value: str) -> Reference | None:
    """Turn a whole-string ``${type.name.attr}`` expression into a Reference."""
    m = _WHOLE_REF.match(value)
    if not m:
        return None
    mode, rtype, name, path = m.groups()
    return Reference(rtype, name, tuple(path.split(".")), DATA if mode else RESOURCE)


def references_in(value: Any) -> Iterator[Reference]:
    """Yield every reference embedded in a value, including inside interpolated strings."""
    if isinstance(value, Reference):
        yield value
    elif isinstance(value, str):
        for chunk in _INTERPOLATION.findall(value):
            for m in _EMBEDDED_REF.finditer(chunk):
                mode, rtype, name, path = m.groups()
                yield Reference(rtype, name, tuple(path.split(".")), DATA if mode else RESOURCE)
    elif isinstance(value, Mapping):
        for v in value.values():
            yield from references_in(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from references_in(v)


@dataclass(frozen=True, eq=False)
class ResourceHandle:
    """An immutable declared resource: attributes, deferred outputs, computed properties."""

    type: str
    name: str
    attributes: ValidatedAttributes
    output_names: tuple[str, ...] = ()
    computed_properties: Mapping[str, Callable[[ValidatedAttributes], Any]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    mode: str = RESOURCE

    @property
    def address(self) -> str:
        return f"data.{self.type}.{self.name}" if self.mode == DATA else f"{self.type}.{self.name}"

    @property
    def outputs(self) -> dict[str, Reference]:
        return {n: self.output(n) for n in self.output_names}

    def exposes(self, attr_name: str) -> bool:
        """Whether ``attr_name`` can be referenced: ``id``, a declared output or a declared attribute."""
        if self.mode == DATA or not self.output_names:
            return True
        return attr_name == "id" or attr_name in self.output_names or attr_name in self.attributes

    def output(self, attr_name: str) -> Reference:
        if not self.exposes(attr_name):
            raise UnknownReferenceTarget(
                f"{self.address}.{attr_name}",
                f"{self.type} exposes: {', '.join(self.output_names)}",
            )
        return Reference(self.type, self.name, (attr_name,), self.mode)

    def computed(self, property_name: str) -> Any:
        try:
            fn = self.computed_properties[property_name]
        except KeyError:
            raise KeyError(f"{self.type} has no computed property {property_name!r}") from None
        return fn(self.attributes)

    def __repr__(self) -> str:
        return f"ResourceHandle({self.address})"

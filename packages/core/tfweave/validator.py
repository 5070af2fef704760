"""Attribute validator: raw attribute maps in, ValidatedAttributes out.

Per-attribute checks run first in declaration order, then the block's
cross-field invariants in declared order. The first failure raises; nothing
partial is ever returned.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from typing import Any

from tfweave.errors import (
    ConditionalRequirementViolation,
    ConstraintViolation,
    InvalidFieldType,
    MissingRequiredField,
    MutualExclusivityViolation,
    ReferentialConsistencyViolation,
)
from tfweave.reference import Reference, is_interpolation
from tfweave.schema import (
    AttributeKind,
    AttributeSchema,
    BlockSchema,
    ConditionalRequirement,
    ExclusiveGroup,
    MemberOf,
)

_TOKEN = object()
_SCALARS = (str, int, float, bool)


class ValidatedAttributes(Mapping[str, Any]):
    """Immutable, ordered attribute map. Only AttributeValidator creates these."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any], *, _token: object = None):
        if _token is not _TOKEN:
            raise TypeError("ValidatedAttributes can only be produced by AttributeValidator")
        object.__setattr__(self, "_data", dict(data))

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ValidatedAttributes is immutable")

    def __repr__(self) -> str:
        return f"ValidatedAttributes({self._data!r})"

    def to_dict(self) -> dict[str, Any]:
        """Plain data copy; references render as their expression strings."""
        return {k: _plain(v) for k, v in self._data.items()}


def _plain(value: Any) -> Any:
    if isinstance(value, ValidatedAttributes):
        return value.to_dict()
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    if isinstance(value, Reference):
        return value.expression
    return value


def is_deferred(value: Any) -> bool:
    """True when the value is only known after apply (a Reference or ``${...}`` string)."""
    return isinstance(value, Reference) or is_interpolation(value)


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, tuple, list, Mapping)):
        return len(value) > 0
    return True


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


class AttributeValidator:
    """Validates raw attribute maps against block and resource schemas."""

    def validate(self, schema: BlockSchema, raw: Mapping[str, Any] | None) -> ValidatedAttributes:
        return self._validate_block(schema, {} if raw is None else raw, "")

    def _validate_block(self, block: BlockSchema, raw: Any, path: str) -> ValidatedAttributes:
        if not isinstance(raw, Mapping):
            raise InvalidFieldType(path or "<root>", "a mapping", raw)

        raw = {str(k): v for k, v in raw.items()}
        declared = set(block.names)
        extras = [k for k in raw if k not in declared]
        if extras and not block.additional_attributes:
            field = _join(path, extras[0])
            raise InvalidFieldType(
                field,
                "a declared attribute",
                raw[extras[0]],
                message=f"{field}: unknown attribute (declared: {', '.join(block.names) or 'none'})",
            )

        result: dict[str, Any] = {}
        for attr in block.attributes:
            field = _join(path, attr.name)
            value = raw.get(attr.name)
            if value is None:
                if attr.required:
                    raise MissingRequiredField(field)
                result[attr.name] = None if attr.default is None else self._check(attr, attr.default, field)
            else:
                result[attr.name] = self._check(attr, value, field)

        for key in extras:
            result[key] = self._infer(raw[key], _join(path, key))

        for inv in block.invariants:
            if isinstance(inv, ExclusiveGroup):
                self._check_exclusive(inv, result, path)
            elif isinstance(inv, ConditionalRequirement):
                self._check_conditional(inv, result, path)
            elif isinstance(inv, MemberOf):
                self._check_member_of(inv, result, path)

        return ValidatedAttributes(result, _token=_TOKEN)

    # --- per-attribute ---

    def _check(self, attr: AttributeSchema, value: Any, field: str) -> Any:
        kind = attr.kind
        if kind in (AttributeKind.SCALAR, AttributeKind.ENUM):
            if is_deferred(value):
                return value
            value = self._coerce_scalar(attr.type, value, field)
            self._check_constraints(attr, value, field)
            return value

        if kind == AttributeKind.ARRAY:
            if isinstance(value, Reference) or is_interpolation(value):
                return value
            if isinstance(value, _SCALARS) and attr.items.kind in (AttributeKind.SCALAR, AttributeKind.ENUM):
                # a lone scalar stands for a one-element list
                value = (value,)
            if not isinstance(value, (list, tuple)):
                raise InvalidFieldType(field, "a list", value)
            self._check_length(attr, len(value), field, "items")
            return tuple(self._check(attr.items, item, f"{field}[{i}]") for i, item in enumerate(value))

        if kind == AttributeKind.MAP:
            if isinstance(value, Reference) or is_interpolation(value):
                return value
            if not isinstance(value, Mapping):
                raise InvalidFieldType(field, "a mapping", value)
            out: dict[str, Any] = {}
            for k, v in value.items():
                key_field = f"{field}.{k}"
                if v is None:
                    continue
                if attr.type == "any":
                    out[str(k)] = self._infer(v, key_field)
                elif is_deferred(v):
                    out[str(k)] = v
                else:
                    out[str(k)] = self._coerce_scalar(attr.type, v, key_field)
            return ValidatedAttributes(out, _token=_TOKEN)

        # nested
        if is_deferred(value):
            return value
        return self._validate_block(attr.block, value, field)

    def _coerce_scalar(self, type_: str, value: Any, field: str) -> Any:
        if isinstance(value, bool):
            if type_ in ("boolean", "any"):
                return value
            raise InvalidFieldType(field, type_, value)
        if type_ == "string":
            if isinstance(value, str):
                return value
            if isinstance(value, (int, float)):
                return str(value)
        elif type_ == "integer":
            if isinstance(value, int):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
        elif type_ == "number":
            if isinstance(value, (int, float)):
                return value
        elif type_ == "boolean":
            pass
        elif isinstance(value, _SCALARS):
            return value
        raise InvalidFieldType(field, type_ if type_ != "any" else "a scalar", value)

    def _check_constraints(self, attr: AttributeSchema, value: Any, field: str) -> None:
        if attr.choices is not None and value not in attr.choices:
            allowed = ", ".join(str(c) for c in attr.choices)
            raise ConstraintViolation(field, "enum", f"{value!r} is not one of: {allowed}")
        if attr.pattern is not None and isinstance(value, str) and not re.fullmatch(attr.pattern, value):
            raise ConstraintViolation(field, "pattern", f"{value!r} does not match {attr.pattern}")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if attr.minimum is not None and value < attr.minimum:
                raise ConstraintViolation(field, "range", f"{value} is below the minimum {attr.minimum:g}")
            if attr.maximum is not None and value > attr.maximum:
                raise ConstraintViolation(field, "range", f"{value} is above the maximum {attr.maximum:g}")
        if isinstance(value, str):
            self._check_length(attr, len(value), field, "characters")

    def _check_length(self, attr: AttributeSchema, size: int, field: str, unit: str) -> None:
        if attr.min_length is not None and size < attr.min_length:
            raise ConstraintViolation(field, "length", f"needs at least {attr.min_length} {unit}, got {size}")
        if attr.max_length is not None and size > attr.max_length:
            raise ConstraintViolation(field, "length", f"allows at most {attr.max_length} {unit}, got {size}")

    def _infer(self, value: Any, field: str) -> Any:
        """Shape undeclared values of open schemas: mappings become blocks, lists tuples."""
        if value is None or isinstance(value, (Reference, *_SCALARS)):
            return value
        if isinstance(value, Mapping):
            return ValidatedAttributes(
                {str(k): self._infer(v, f"{field}.{k}") for k, v in value.items()}, _token=_TOKEN
            )
        if isinstance(value, (list, tuple)):
            return tuple(self._infer(v, f"{field}[{i}]") for i, v in enumerate(value))
        raise InvalidFieldType(field, "a scalar, list or mapping", value)

    # --- cross-field invariants ---

    def _check_exclusive(self, inv: ExclusiveGroup, attrs: dict[str, Any], path: str) -> None:
        present = [name for name in inv.members if is_present(attrs.get(name))]
        if len(present) > 1 or (inv.mode == "exactly_one" and not present):
            members = [_join(path, m) for m in inv.members]
            raise MutualExclusivityViolation(members, [_join(path, p) for p in present], inv.mode)

    def _check_conditional(self, inv: ConditionalRequirement, attrs: dict[str, Any], path: str) -> None:
        trigger = attrs.get(inv.when)
        if is_deferred(trigger):
            return
        if inv.equals is None:
            active = is_present(trigger)
            condition = f"{inv.when} is set"
        else:
            active = trigger == inv.equals
            condition = f"{inv.when} is {inv.equals!r}"

        required_present = is_present(attrs.get(inv.require))
        field = _join(path, inv.require)
        if active and not required_present:
            raise ConditionalRequirementViolation(field, inv.message or f"{field} is required when {condition}")
        if inv.forbid_otherwise and not active and required_present:
            raise ConditionalRequirementViolation(field, inv.message or f"{field} can only be set when {condition}")

    def _check_member_of(self, inv: MemberOf, attrs: dict[str, Any], path: str) -> None:
        values = _collect(attrs, inv.path.split("."))
        allowed = [v for v in _collect(attrs, inv.collection.split(".")) if not is_deferred(v)]
        for value in values:
            if is_deferred(value):
                continue
            if value not in allowed:
                field = _join(path, inv.path)
                raise ReferentialConsistencyViolation(
                    field,
                    inv.message
                    or f"{field}: {value!r} is not among the declared {_join(path, inv.collection)} values",
                )


def _collect(value: Any, parts: list[str]) -> list[Any]:
    """Collect the values at a dotted path, flattening through arrays."""
    if value is None:
        return []
    if isinstance(value, tuple):
        return [v for item in value for v in _collect(item, parts)]
    if not parts:
        return [value]
    if isinstance(value, Mapping):
        return _collect(value.get(parts[0]), parts[1:])
    return []


_default_validator = AttributeValidator()


def validate(schema: BlockSchema, raw: Mapping[str, Any] | None) -> ValidatedAttributes:
    """Validate ``raw`` against ``schema`` with the shared stateless validator."""
    return _default_validator.validate(schema, raw)

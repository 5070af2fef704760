"""Attribute schemas: the declarative constraint system shared by every resource kind.

A ResourceSchema lists AttributeSchemas in declaration order (the order the
synthesized document follows) plus cross-field invariants evaluated after the
per-attribute checks.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AttributeKind(str, Enum):
    SCALAR = "scalar"
    ENUM = "enum"
    ARRAY = "array"
    MAP = "map"
    NESTED = "nested"


ScalarType = Literal["string", "integer", "number", "boolean", "any"]


class AttributeSchema(BaseModel):
    """Constraints for one attribute. Array element schemas are anonymous (empty name)."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = ""
    kind: AttributeKind = AttributeKind.SCALAR
    type: ScalarType = "string"
    required: bool = False
    default: Any = None
    description: str = ""
    sensitive: bool = False
    json_encode: bool = False
    pattern: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    choices: list[Any] | None = None
    items: AttributeSchema | None = None
    block: BlockSchema | None = Field(default=None, alias="schema")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"Invalid pattern {v!r}: {exc}") from exc
        return v

    @model_validator(mode="after")
    def check_shape(self) -> AttributeSchema:
        label = self.name or "<item>"
        if self.choices is not None and not self.choices:
            raise ValueError(f"Attribute {label!r} declares an empty enum set")
        if self.kind == AttributeKind.ENUM and not self.choices:
            raise ValueError(f"Enum attribute {label!r} needs a non-empty choices list")
        if self.kind == AttributeKind.NESTED and self.block is None:
            raise ValueError(f"Nested attribute {label!r} needs a schema")
        if self.kind == AttributeKind.ARRAY and self.items is None:
            self.items = AttributeSchema(kind=AttributeKind.SCALAR, type="any")
        if self.required and self.default is not None:
            raise ValueError(f"Attribute {label!r} cannot be both required and defaulted")
        return self

    @property
    def is_block_array(self) -> bool:
        return self.kind == AttributeKind.ARRAY and self.items is not None and self.items.kind == AttributeKind.NESTED


class ExclusiveGroup(BaseModel):
    """Exactly one (or at most one) of ``members`` may be present."""

    type: Literal["exclusive"] = "exclusive"
    members: list[str]
    mode: Literal["exactly_one", "at_most_one"] = "exactly_one"

    @field_validator("members")
    @classmethod
    def validate_members(cls, v: list[str]) -> list[str]:
        if len(v) < 2:
            raise ValueError("An exclusive group needs at least two members")
        return v

    def names(self) -> list[str]:
        return list(self.members)


class ConditionalRequirement(BaseModel):
    """``require`` must be present when ``when`` equals ``equals`` (or is present, if equals is unset)."""

    type: Literal["conditional"] = "conditional"
    require: str
    when: str
    equals: Any = None
    forbid_otherwise: bool = False
    message: str | None = None

    def names(self) -> list[str]:
        return [self.require, self.when]


class MemberOf(BaseModel):
    """Every value found at ``path`` must appear among the values found at ``collection``.

    Paths are dotted and flatten through arrays: ``origin.origin_id`` collects
    the ``origin_id`` of every ``origin`` block.
    """

    type: Literal["member_of"] = "member_of"
    path: str
    collection: str
    message: str | None = None

    def names(self) -> list[str]:
        return [self.path.split(".")[0], self.collection.split(".")[0]]


Invariant = Annotated[Union[ExclusiveGroup, ConditionalRequirement, MemberOf], Field(discriminator="type")]


class BlockSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    attributes: list[AttributeSchema] = Field(default_factory=list)
    invariants: list[Invariant] = Field(default_factory=list)
    additional_attributes: bool = False

    @model_validator(mode="after")
    def check_names(self) -> BlockSchema:
        seen: dict[str, AttributeSchema] = {}
        for attr in self.attributes:
            if not attr.name:
                raise ValueError("Block attributes must be named")
            if attr.name in seen:
                raise ValueError(f"Duplicate attribute name {attr.name!r}")
            seen[attr.name] = attr
        if not self.additional_attributes:
            for inv in self.invariants:
                for name in inv.names():
                    if name not in seen:
                        raise ValueError(f"Invariant {inv.type!r} refers to undeclared attribute {name!r}")
        return self

    def attribute(self, name: str) -> AttributeSchema | None:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    @property
    def names(self) -> list[str]:
        return [a.name for a in self.attributes]


class ResourceSchema(BlockSchema):
    """Schema for one resource kind, e.g. ``aws_s3_bucket``."""

    kind: str
    description: str = ""
    outputs: list[str] = Field(default_factory=list)

    @classmethod
    def open(cls, kind: str) -> ResourceSchema:
        """A schema accepting any attributes, used for kinds with no registered schema."""
        return cls(kind=kind, additional_attributes=True)


AttributeSchema.model_rebuild()
BlockSchema.model_rebuild()
ResourceSchema.model_rebuild()

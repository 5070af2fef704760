"""Error taxonomy for validation, synthesis and compilation."""

from __future__ import annotations

from typing import Any


class TfweaveError(Exception):
    """Base class for every error raised by tfweave."""

    def to_dict(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "message": str(self)}


# --- validation phase ---


class ValidationError(TfweaveError):
    """A resource's attributes failed validation. No partial object is produced."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"type": type(self).__name__, "field": self.field, "message": str(self)}


class MissingRequiredField(ValidationError):
    def __init__(self, field: str):
        super().__init__(field, f"Missing required field: {field}")


class InvalidFieldType(ValidationError):
    def __init__(self, field: str, expected: str, value: Any, message: str | None = None):
        self.expected = expected
        super().__init__(field, message or f"{field}: expected {expected}, got {type(value).__name__} ({value!r})")


class ConstraintViolation(ValidationError):
    """A regex, range, length or enum constraint rejected the value."""

    def __init__(self, field: str, constraint: str, detail: str):
        self.constraint = constraint
        super().__init__(field, f"{field}: {detail}")


class MutualExclusivityViolation(ValidationError):
    def __init__(self, fields: list[str], present: list[str], mode: str = "exactly_one"):
        self.fields = list(fields)
        self.present = list(present)
        wanted = "exactly one" if mode == "exactly_one" else "at most one"
        found = ", ".join(present) if present else "none"
        super().__init__(",".join(fields), f"Expected {wanted} of [{', '.join(fields)}], found: {found}")


class ConditionalRequirementViolation(ValidationError):
    pass


class ReferentialConsistencyViolation(ValidationError):
    pass


# --- synthesis / reference phase ---


class DuplicateResourceError(TfweaveError):
    def __init__(self, resource_type: str, name: str):
        self.resource_type = resource_type
        self.name = name
        super().__init__(f"Resource {resource_type}.{name} is already declared")


class UnknownReferenceTarget(TfweaveError):
    def __init__(self, target: str, detail: str = ""):
        self.target = target
        msg = f"Reference to unknown target {target}"
        super().__init__(f"{msg}: {detail}" if detail else msg)


class UnknownResourceKind(TfweaveError):
    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No schema registered for resource kind {kind!r}")


class TemplateSyntaxError(TfweaveError):
    """A template body could not be parsed into declarations."""

    def __init__(self, template: str, detail: str, line: int | None = None):
        self.template = template
        self.line = line
        where = f" at line {line}" if line is not None else ""
        super().__init__(f"Syntax error in template '{template}'{where}: {detail}")

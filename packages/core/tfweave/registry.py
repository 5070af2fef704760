"""Schema registry: loads YAML category files describing resource kinds.

Kind definitions live in data/schemas/*.yaml, one file per category. Each
entry is a ResourceSchema (attributes, invariants, outputs); computed
properties are attached from tfweave.kinds. Loading happens once, before any
template is compiled; lookups after that are read-only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from tfweave.errors import TfweaveError, UnknownResourceKind
from tfweave.kinds import COMPUTED_PROPERTIES, ComputedProperty
from tfweave.schema import ResourceSchema

logger = logging.getLogger(__name__)

_SCHEMA_DIR = Path(__file__).parent / "data" / "schemas"


@dataclass(frozen=True)
class ResourceKind:
    """A registered kind: its schema plus computed property functions."""

    schema: ResourceSchema
    category: str = "custom"
    computed: Mapping[str, ComputedProperty] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def name(self) -> str:
        return self.schema.kind

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.schema.kind,
            "category": self.category,
            "description": self.schema.description,
            "attributes": self.schema.names,
            "required": [a.name for a in self.schema.attributes if a.required],
            "outputs": list(self.schema.outputs),
            "computed": sorted(self.computed),
        }


class SchemaRegistry:
    """Registry of resource kinds loaded from YAML category files.

    O(1) lookup by kind name. Extra directories are loaded after the bundled
    catalog, so a kind defined there replaces the bundled definition.
    """

    def __init__(self, schema_dirs: Iterable[str | Path] = (), include_builtin: bool = True):
        self._kinds: dict[str, ResourceKind] = {}
        self._by_category: dict[str, list[str]] = {}
        dirs = [_SCHEMA_DIR] if include_builtin else []
        dirs.extend(Path(d) for d in schema_dirs)
        for d in dirs:
            self.load_dir(d)

    def load_dir(self, directory: str | Path) -> int:
        """Load every ``*.yaml`` category file in ``directory``. Returns the number of kinds loaded."""
        directory = Path(directory)
        if not directory.is_dir():
            logger.warning("Schema directory %s does not exist, skipping", directory)
            return 0
        count = 0
        for yaml_path in sorted(directory.glob("*.yaml")):
            count += self.load_file(yaml_path)
        return count

    def load_file(self, path: str | Path) -> int:
        path = Path(path)
        data = yaml.safe_load(path.read_text()) or {}
        category = data.get("category", path.stem)
        count = 0
        for entry in data.get("kinds", []):
            try:
                schema = ResourceSchema.model_validate(entry)
            except PydanticValidationError as exc:
                raise TfweaveError(f"Invalid schema for {entry.get('kind', '?')} in {path}: {exc}") from exc
            self.register(schema, category=category)
            count += 1
        logger.debug("Loaded %d kinds from %s", count, path.name)
        return count

    def register(
        self,
        schema: ResourceSchema,
        computed: Mapping[str, ComputedProperty] | None = None,
        category: str = "custom",
    ) -> ResourceKind:
        """Register (or replace) a kind. Computed properties default to the bundled set for the kind."""
        props = dict(COMPUTED_PROPERTIES.get(schema.kind, {}))
        if computed:
            props.update(computed)
        kind = ResourceKind(schema=schema, category=category, computed=MappingProxyType(props))

        previous = self._kinds.get(schema.kind)
        if previous is not None:
            logger.info("Replacing schema for %s", schema.kind)
            self._by_category[previous.category].remove(schema.kind)
        self._kinds[schema.kind] = kind
        self._by_category.setdefault(category, []).append(schema.kind)
        return kind

    def get(self, kind: str) -> ResourceKind | None:
        """Return the kind definition or None if not registered."""
        return self._kinds.get(kind)

    def require(self, kind: str) -> ResourceKind:
        found = self._kinds.get(kind)
        if found is None:
            raise UnknownResourceKind(kind)
        return found

    def resolve(self, kind: str, strict: bool = False) -> ResourceKind:
        """Kind definition for ``kind``; unknown kinds get an open schema unless ``strict``."""
        found = self._kinds.get(kind)
        if found is not None:
            return found
        if strict:
            raise UnknownResourceKind(kind)
        return ResourceKind(schema=ResourceSchema.open(kind), category="unregistered")

    def list_kinds(self, category: str | None = None) -> list[str]:
        if category is not None:
            return sorted(self._by_category.get(category, []))
        return sorted(self._kinds)

    def list_categories(self) -> list[str]:
        """Sorted list of categories with at least one kind."""
        return sorted(c for c, kinds in self._by_category.items() if kinds)

    def stats(self) -> dict[str, Any]:
        return {
            "total_kinds": len(self._kinds),
            "categories": {c: len(k) for c, k in sorted(self._by_category.items()) if k},
        }

    def __contains__(self, kind: object) -> bool:
        return kind in self._kinds

    def __len__(self) -> int:
        return len(self._kinds)

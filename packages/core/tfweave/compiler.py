"""Template compiler: template bodies in, synthesized documents out.

A Template is one compilation unit. Its declarations are validated against
the kind schemas, checked for references to undeclared targets, registered in
the ResourceRegistry under the template's scope, and synthesized in
declaration order. TemplateCompiler extracts every template from a source
file and compiles them independently; a failing template never affects its
siblings.
"""

from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Hashable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from tfweave.config import Settings
from tfweave.document import Block
from tfweave.errors import (
    DuplicateResourceError,
    MissingRequiredField,
    TemplateSyntaxError,
    TfweaveError,
    UnknownReferenceTarget,
)
from tfweave.extractor import TemplateExtractionResult, TemplateExtractor
from tfweave.reference import DATA, RESOURCE, Reference, ResourceHandle, parse_reference, references_in
from tfweave.registry import SchemaRegistry
from tfweave.resources import ResourceRegistry
from tfweave.schema import AttributeSchema, BlockSchema
from tfweave.synthesizer import DocumentSynthesizer
from tfweave.validator import AttributeValidator, ValidatedAttributes

logger = logging.getLogger(__name__)

_OPEN_BLOCK = BlockSchema(additional_attributes=True)
_MODULE_SCHEMA = BlockSchema(
    attributes=[AttributeSchema(name="source", required=True), AttributeSchema(name="version")],
    additional_attributes=True,
)
_OUTPUT_SCHEMA = BlockSchema(
    attributes=[AttributeSchema(name="description"), AttributeSchema(name="sensitive", type="boolean")],
    additional_attributes=True,
)

# document section order
_SECTIONS = ("provider", "variable", "locals", "data", "resource", "module", "output")


# --- body parsing ---


class _DuplicateKey(yaml.YAMLError):
    def __init__(self, key: Any, line: int, top_level: bool):
        self.key = key
        self.line = line
        self.top_level = top_level
        super().__init__(f"duplicate key {key!r}")


class _BodyLoader(yaml.SafeLoader):
    """SafeLoader that rejects repeated mapping keys instead of keeping the last one."""


def _construct_mapping(loader: _BodyLoader, node: yaml.MappingNode, deep: bool = False) -> dict[Any, Any]:
    loader.flatten_mapping(node)
    seen: set[Any] = set()
    for key_node, _ in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if not isinstance(key, Hashable):
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping", node.start_mark, "found unhashable key", key_node.start_mark
            )
        if key in seen:
            raise _DuplicateKey(key, key_node.start_mark.line + 1, top_level=node.start_mark.column == 0)
        seen.add(key)
    return loader.construct_mapping(node, deep=deep)


_BodyLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_mapping)


def parse_body(template: str, text: str) -> list[tuple[list[str], Any]]:
    """Split a YAML template body into ``(header words, value)`` declarations, in order."""
    try:
        data = yaml.load(text, Loader=_BodyLoader)
    except _DuplicateKey as exc:
        words = _split_header(template, str(exc.key))
        if exc.top_level and words[0] in ("resource", "data") and len(words) == 3:
            kind = words[1] if words[0] == "resource" else f"data.{words[1]}"
            raise DuplicateResourceError(kind, words[2]) from exc
        raise TemplateSyntaxError(template, f"duplicate key {exc.key!r}", exc.line) from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = mark.line + 1 if mark is not None else None
        problem = getattr(exc, "problem", None) or str(exc)
        raise TemplateSyntaxError(template, problem, line) from exc

    if data is None:
        return []
    if not isinstance(data, Mapping):
        raise TemplateSyntaxError(template, f"body must be a mapping of declarations, got {type(data).__name__}")
    return [(_split_header(template, str(k)), resolve_references(v)) for k, v in data.items()]


def _split_header(template: str, header: str) -> list[str]:
    try:
        words = shlex.split(header)
    except ValueError as exc:
        raise TemplateSyntaxError(template, f"bad declaration header {header!r}: {exc}") from exc
    if not words:
        raise TemplateSyntaxError(template, "empty declaration header")
    return words


def resolve_references(value: Any) -> Any:
    """Turn whole-string ``${type.name.attr}`` expressions into References, recursively."""
    if isinstance(value, str):
        reference = parse_reference(value)
        return value if reference is None else reference
    if isinstance(value, Mapping):
        return {str(k): resolve_references(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_references(v) for v in value]
    return value


# --- compilation unit ---


@dataclass
class _Declaration:
    section: str
    labels: tuple[str, ...]
    body: Block | None


class Template:
    """A compilation unit: declarations registered and synthesized in order.

    Usable directly as a builder::

        tpl = Template("network", schemas)
        vpc = tpl.resource("aws_vpc", "main", {"cidr_block": "10.0.0.0/16"})
        tpl.resource("aws_subnet", "a", {"vpc_id": vpc.output("id"), "cidr_block": "10.0.1.0/24"})
        document = tpl.synthesize()
    """

    def __init__(
        self,
        name: str,
        schemas: SchemaRegistry | None = None,
        registry: ResourceRegistry | None = None,
        strict_kinds: bool = False,
    ):
        self.name = name
        self.schemas = schemas if schemas is not None else SchemaRegistry()
        self.registry = registry if registry is not None else ResourceRegistry()
        self.strict_kinds = strict_kinds
        self.warnings: list[str] = []
        self._declarations: list[_Declaration] = []
        self._handles: list[ResourceHandle] = []
        self._validator = AttributeValidator()
        self._synthesizer = DocumentSynthesizer()

    @property
    def handles(self) -> list[ResourceHandle]:
        return list(self._handles)

    @property
    def resource_count(self) -> int:
        return sum(1 for h in self._handles if h.mode == RESOURCE)

    def has_provider(self) -> bool:
        return any(d.section == "provider" for d in self._declarations)

    # --- declarations ---

    def resource(self, resource_type: str, name: str, attributes: Mapping[str, Any] | None = None) -> ResourceHandle:
        kind = self.schemas.resolve(resource_type, strict=self.strict_kinds)
        if kind.category == "unregistered":
            self.warn(f"No schema registered for {resource_type}; attributes passed through unchecked")
        attrs = self._validator.validate(kind.schema, attributes)
        self._check_references(attrs)
        handle = ResourceHandle(
            type=resource_type,
            name=name,
            attributes=attrs,
            output_names=tuple(kind.schema.outputs),
            computed_properties=kind.computed,
        )
        self.registry.register(handle, scope=self.name)
        body = self._synthesizer.synthesize(kind.schema, attrs)
        self._handles.append(handle)
        self._declarations.append(_Declaration("resource", (resource_type, name), body))
        logger.debug("Declared %s in template '%s'", handle.address, self.name)
        return handle

    def data(self, data_type: str, name: str, attributes: Mapping[str, Any] | None = None) -> ResourceHandle:
        """Declare a data source. Data sources are looked up, not created, so any attribute may be read."""
        attrs = self._validator.validate(_OPEN_BLOCK, attributes)
        self._check_references(attrs)
        handle = ResourceHandle(type=data_type, name=name, attributes=attrs, mode=DATA)
        self.registry.register(handle, scope=self.name)
        self._handles.append(handle)
        self._declarations.append(_Declaration("data", (data_type, name), self._synthesizer.synthesize(_OPEN_BLOCK, attrs)))
        return handle

    def provider(self, name: str, attributes: Mapping[str, Any] | None = None) -> None:
        self._declare_open("provider", (name,), _OPEN_BLOCK, attributes)

    def variable(self, name: str, attributes: Mapping[str, Any] | None = None) -> None:
        self._declare_open("variable", (name,), _OPEN_BLOCK, attributes)

    def locals(self, values: Mapping[str, Any]) -> None:
        self._declare_open("locals", (), _OPEN_BLOCK, values)

    def module(self, name: str, attributes: Mapping[str, Any]) -> None:
        self._declare_open("module", (name,), _MODULE_SCHEMA, attributes, field_prefix=f"module.{name}")

    def output(self, name: str, value: Any, description: str | None = None, sensitive: bool | None = None) -> None:
        if value is None:
            raise MissingRequiredField(f"output.{name}.value")
        raw: dict[str, Any] = {"value": value}
        if description is not None:
            raw["description"] = description
        if sensitive is not None:
            raw["sensitive"] = sensitive
        self._declare_open("output", (name,), _OUTPUT_SCHEMA, raw)

    def declare(self, header: list[str], value: Any) -> None:
        """Dispatch one parsed ``(header words, value)`` declaration."""
        section, labels = header[0], header[1:]
        expected = {"provider": 1, "resource": 2, "data": 2, "output": 1, "variable": 1, "module": 1, "locals": 0}
        if section not in expected:
            raise TemplateSyntaxError(self.name, f"unknown declaration {' '.join(header)!r}")
        if len(labels) != expected[section]:
            raise TemplateSyntaxError(
                self.name, f"'{section}' takes {expected[section]} label(s), got {' '.join(header)!r}"
            )
        if section == "output":
            if isinstance(value, Mapping) and "value" in value:
                extra = {k: v for k, v in value.items() if k not in ("value", "description", "sensitive")}
                if extra:
                    raise TemplateSyntaxError(self.name, f"output {labels[0]!r} has unknown keys: {', '.join(extra)}")
                self.output(labels[0], value["value"], value.get("description"), value.get("sensitive"))
            else:
                self.output(labels[0], value)
            return
        if value is not None and not isinstance(value, Mapping):
            raise TemplateSyntaxError(self.name, f"'{' '.join(header)}' must be a mapping")
        if section == "resource":
            self.resource(labels[0], labels[1], value)
        elif section == "data":
            self.data(labels[0], labels[1], value)
        elif section == "provider":
            self.provider(labels[0], value)
        elif section == "variable":
            self.variable(labels[0], value)
        elif section == "module":
            self.module(labels[0], value or {})
        else:
            self.locals(value or {})

    def synthesize(self) -> Block:
        """The template document: sections in a fixed order, declarations in source order within each."""
        sections: list[tuple[str, Any]] = []
        for section in _SECTIONS:
            decls = [d for d in self._declarations if d.section == section]
            if not decls:
                continue
            if section == "locals":
                entries = tuple(e for d in decls if d.body is not None for e in d.body.entries)
                sections.append((section, Block(entries)))
            elif section in ("resource", "data"):
                by_type: dict[str, list[tuple[str, Any]]] = {}
                for d in decls:
                    by_type.setdefault(d.labels[0], []).append((d.labels[1], d.body or Block()))
                sections.append((section, Block(tuple((t, Block(tuple(items))) for t, items in by_type.items()))))
            else:
                sections.append((section, Block(tuple((d.labels[0], d.body or Block()) for d in decls))))
        return Block(tuple(sections))

    # --- internals ---

    def _declare_open(
        self,
        section: str,
        labels: tuple[str, ...],
        schema: BlockSchema,
        raw: Mapping[str, Any] | None,
        field_prefix: str = "",
    ) -> None:
        try:
            attrs = self._validator.validate(schema, raw)
        except MissingRequiredField as exc:
            if field_prefix:
                raise MissingRequiredField(f"{field_prefix}.{exc.field}") from exc
            raise
        self._check_references(attrs)
        self._declarations.append(_Declaration(section, labels, self._synthesizer.synthesize(schema, attrs)))

    def _check_references(self, attrs: ValidatedAttributes) -> None:
        for reference in references_in(attrs):
            self._check_reference(reference)

    def _check_reference(self, reference: Reference) -> None:
        target = self.registry.lookup(reference.resource_type, reference.resource_name, self.name, reference.mode)
        if target is None:
            raise UnknownReferenceTarget(reference.address, f"not declared earlier in template '{self.name}'")
        attribute = reference.attribute_path[0]
        if target.exposes(attribute):
            return
        raise UnknownReferenceTarget(
            f"{reference.address}.{attribute}", f"{target.type} exposes: {', '.join(target.output_names)}"
        )

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)
            logger.info("[%s] %s", self.name, message)


# --- file-level compiler ---


@dataclass
class CompilationResult:
    template: str
    success: bool
    document: Block | None = None
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    resources: list[str] = field(default_factory=list)
    line: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "template": self.template,
            "success": self.success,
            "line": self.line,
            "resources": self.resources,
            "errors": self.errors,
            "warnings": self.warnings,
            "document": self.document.to_dict() if self.document is not None else None,
        }


class TemplateCompiler:
    """Compiles every template found in a source file into a document."""

    def __init__(
        self,
        schemas: SchemaRegistry | None = None,
        settings: Settings | None = None,
        registry: ResourceRegistry | None = None,
    ):
        self.settings = settings if settings is not None else Settings()
        self.schemas = schemas if schemas is not None else SchemaRegistry(self.settings.schema_dirs)
        self.registry = registry if registry is not None else ResourceRegistry()
        self._extractor = TemplateExtractor()

    def compile_file(self, path: str | Path, template: str | None = None) -> list[CompilationResult]:
        path = Path(path)
        logger.info("Compiling %s", path)
        return self.compile_source(path.read_text(), template=template)

    def compile_source(self, source_text: str, template: str | None = None) -> list[CompilationResult]:
        """Compile all templates (or only ``template``) in source order."""
        extracted = self._extractor.extract(source_text)
        if template is not None:
            extracted = [t for t in extracted if t.name == template]
            if not extracted:
                logger.warning("Template '%s' not found", template)
        if not extracted:
            return []

        seen: set[str] = set()
        unique: list[TemplateExtractionResult] = []
        duplicates: dict[int, CompilationResult] = {}
        for i, t in enumerate(extracted):
            if t.name in seen:
                err = TemplateSyntaxError(t.name, "template name already used earlier in this file", t.line)
                duplicates[i] = CompilationResult(template=t.name, success=False, errors=[err.to_dict()], line=t.line)
            else:
                seen.add(t.name)
                unique.append(t)

        compiled = iter(self._map(self.compile_template, unique))
        return [duplicates[i] if i in duplicates else next(compiled) for i in range(len(extracted))]

    def compile_template(self, extracted: TemplateExtractionResult) -> CompilationResult:
        self.registry.clear(extracted.name)
        tpl = Template(extracted.name, self.schemas, self.registry, strict_kinds=self.settings.strict_kinds)
        result = CompilationResult(template=extracted.name, success=False, line=extracted.line)
        try:
            for header, value in parse_body(extracted.name, extracted.content):
                tpl.declare(header, value)
            result.document = tpl.synthesize()
            result.success = True
        except TfweaveError as exc:
            logger.debug("Template '%s' failed: %s", extracted.name, exc)
            result.errors.append(exc.to_dict())

        if result.success:
            if tpl.resource_count == 0:
                tpl.warn("No resources defined in template")
            if not tpl.has_provider():
                tpl.warn("No provider configuration found")
        result.warnings = list(tpl.warnings)
        result.resources = [h.address for h in tpl.handles]
        return result

    def _map(self, fn: Any, items: list[TemplateExtractionResult]) -> list[CompilationResult]:
        workers = min(len(items), os.cpu_count() or 1, self.settings.max_workers)
        if not self.settings.parallel or workers <= 1:
            return [fn(t) for t in items]
        logger.debug("Compiling %d templates on %d threads", len(items), workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(fn, items))

"""Document synthesizer: walks a schema and its validated attributes into a Block.

The schema already enumerates every attribute and its shape, so the walk is a
plain dispatch on AttributeKind:

- scalars, enums and scalar arrays  -> ``set_scalar``
- nested attributes                  -> ``enter_block`` recursion
- arrays of nested attributes        -> one ``enter_block`` per element, same key
- maps                               -> a block of scalars
- ``json_encode`` attributes          -> one JSON string scalar (policy documents)

Optional attributes whose value is None or empty are left out of the document
entirely so the engine does not see spurious nulls.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from tfweave.document import Block, DocumentBuilder
from tfweave.reference import Reference
from tfweave.schema import AttributeKind, AttributeSchema, BlockSchema
from tfweave.validator import ValidatedAttributes


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, tuple, Mapping)):
        return len(value) == 0
    return False


class DocumentSynthesizer:
    def synthesize(self, schema: BlockSchema, attrs: ValidatedAttributes) -> Block:
        builder = DocumentBuilder()
        with builder:
            self.write(builder, schema, attrs)
        return builder.build()

    def write(self, builder: DocumentBuilder, schema: BlockSchema | None, attrs: Mapping[str, Any]) -> None:
        """Write ``attrs`` into ``builder`` in their (declaration) order."""
        for key, value in attrs.items():
            attr = schema.attribute(key) if schema is not None else None
            if not self._emits(attr, value):
                continue
            if attr is None:
                self._write_inferred(builder, key, value)
            elif isinstance(value, Reference) or isinstance(value, str):
                builder.set_scalar(key, value)
            elif attr.json_encode:
                builder.set_scalar(key, json.dumps(self._plain(attr, value), separators=(",", ":")))
            elif attr.kind == AttributeKind.NESTED:
                with builder.enter_block(key) as child:
                    self.write(child, attr.block, value)
            elif attr.is_block_array:
                for item in value:
                    with builder.enter_block(key) as child:
                        self.write(child, attr.items.block, item)
            elif attr.kind == AttributeKind.MAP:
                with builder.enter_block(key) as child:
                    for k, v in value.items():
                        self._write_inferred(child, k, v)
            else:
                builder.set_scalar(key, value)

    def _emits(self, attr: AttributeSchema | None, value: Any) -> bool:
        if attr is not None and attr.required:
            return value is not None
        if _is_empty(value):
            return False
        if isinstance(value, ValidatedAttributes):
            block = attr.block if attr is not None and attr.kind == AttributeKind.NESTED else None
            return any(self._emits(block.attribute(k) if block else None, v) for k, v in value.items())
        return True

    def _plain(self, attr: AttributeSchema | None, value: Any) -> Any:
        """Plain data for ``value`` with the same omission rule as the document walk."""
        if isinstance(value, Reference):
            return value.expression
        if isinstance(value, Mapping):
            block = attr.block if attr is not None and attr.kind == AttributeKind.NESTED else None
            out = {}
            for k, v in value.items():
                sub = block.attribute(k) if block is not None else None
                if self._emits(sub, v):
                    out[k] = self._plain(sub, v)
            return out
        if isinstance(value, tuple):
            items = attr.items if attr is not None and attr.kind == AttributeKind.ARRAY else None
            return [self._plain(items, v) for v in value]
        return value

    def _write_inferred(self, builder: DocumentBuilder, key: str, value: Any) -> None:
        if _is_empty(value):
            return
        if isinstance(value, Mapping):
            with builder.enter_block(key) as child:
                self.write(child, None, value)
        elif isinstance(value, tuple) and value and all(isinstance(v, Mapping) for v in value):
            for item in value:
                with builder.enter_block(key) as child:
                    self.write(child, None, item)
        else:
            builder.set_scalar(key, value)


_default_synthesizer = DocumentSynthesizer()


def synthesize(schema: BlockSchema, attrs: ValidatedAttributes) -> Block:
    return _default_synthesizer.synthesize(schema, attrs)

"""Document tree and the builder that produces it.

The tree is what the provisioning engine consumes. Block entries keep the exact
order they were written in, and a key may repeat: the engine reads repeated
keys as repeated nested blocks (``ingress``, ``lifecycle_rule`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from tfweave.reference import Reference


@dataclass(frozen=True)
class Scalar:
    value: Any


@dataclass(frozen=True)
class ListNode:
    items: tuple[DocumentNode, ...] = ()


@dataclass(frozen=True)
class Block:
    entries: tuple[tuple[str, DocumentNode], ...] = ()

    def keys(self) -> list[str]:
        return [k for k, _ in self.entries]

    def get(self, key: str) -> DocumentNode | None:
        for k, node in self.entries:
            if k == key:
                return node
        return None

    def get_all(self, key: str) -> list[DocumentNode]:
        return [node for k, node in self.entries if k == key]

    def to_dict(self) -> dict[str, Any]:
        """Plain data. Keys appearing more than once become a list, in emission order."""
        grouped: dict[str, list[Any]] = {}
        for key, node in self.entries:
            grouped.setdefault(key, []).append(to_data(node))
        return {k: v[0] if len(v) == 1 else v for k, v in grouped.items()}


DocumentNode = Union[Scalar, ListNode, Block]


def to_data(node: DocumentNode) -> Any:
    if isinstance(node, Scalar):
        return node.value
    if isinstance(node, ListNode):
        return [to_data(n) for n in node.items]
    return node.to_dict()


def _scalar_node(value: Any) -> DocumentNode:
    if isinstance(value, Reference):
        return Scalar(value.expression)
    if isinstance(value, (list, tuple)):
        return ListNode(tuple(_scalar_node(v) for v in value))
    return Scalar(value)


class DocumentBuilder:
    """Imperative builder for a Block.

    ``enter_block`` returns a child builder whose block is placed at the
    position of the call, so sibling order always equals call order. Builders
    are context managers; leaving the ``with`` block closes them.
    """

    def __init__(self) -> None:
        self._entries: list[tuple[str, DocumentNode | DocumentBuilder]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def set_scalar(self, key: str, value: Any) -> DocumentBuilder:
        """Set a scalar, a reference, or a list of scalars."""
        self._ensure_open()
        self._entries.append((key, _scalar_node(value)))
        return self

    def enter_block(self, key: str) -> DocumentBuilder:
        self._ensure_open()
        child = DocumentBuilder()
        self._entries.append((key, child))
        return child

    def close(self) -> None:
        self._closed = True

    def build(self) -> Block:
        entries = []
        for key, item in self._entries:
            entries.append((key, item.build() if isinstance(item, DocumentBuilder) else item))
        return Block(tuple(entries))

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Cannot write to a closed document builder")

    def __enter__(self) -> DocumentBuilder:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

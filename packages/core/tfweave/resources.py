"""Registry of declared resource handles, scoped per template."""

from __future__ import annotations

import logging
import threading

from tfweave.errors import DuplicateResourceError
from tfweave.reference import RESOURCE, ResourceHandle

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Thread-safe table of (scope, mode, type, name) -> ResourceHandle.

    A scope is a template name. Uniqueness is enforced within a scope; the
    same address may be declared in two different templates.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[tuple[str, str, str, str], ResourceHandle] = {}

    def register(self, handle: ResourceHandle, scope: str = "") -> ResourceHandle:
        key = (scope, handle.mode, handle.type, handle.name)
        with self._lock:
            if key in self._handles:
                prefix = handle.type if handle.mode == RESOURCE else f"data.{handle.type}"
                raise DuplicateResourceError(prefix, handle.name)
            self._handles[key] = handle
        logger.debug("Registered %s in %s", handle.address, scope or "<global>")
        return handle

    def lookup(self, resource_type: str, name: str, scope: str = "", mode: str = RESOURCE) -> ResourceHandle | None:
        with self._lock:
            return self._handles.get((scope, mode, resource_type, name))

    def contains(self, resource_type: str, name: str, scope: str = "", mode: str = RESOURCE) -> bool:
        return self.lookup(resource_type, name, scope, mode) is not None

    def handles(self, scope: str | None = None) -> list[ResourceHandle]:
        """Handles in registration order, optionally restricted to one scope."""
        with self._lock:
            return [h for (s, _, _, _), h in self._handles.items() if scope is None or s == scope]

    def scopes(self) -> list[str]:
        with self._lock:
            return list(dict.fromkeys(s for s, _, _, _ in self._handles))

    def clear(self, scope: str | None = None) -> None:
        with self._lock:
            if scope is None:
                self._handles.clear()
            else:
                self._handles = {k: h for k, h in self._handles.items() if k[0] != scope}

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

"""
Orchestration object store.

:class:`ObjectStore` is the seam to the orchestration API; the in-memory
implementation enforces optimistic concurrency through ``resource_version`` the
same way the real API server does, which is what the update retry loops in
:mod:`memberscale.core.control.resource_control` are written against.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type, TypeVar

from memberscale.core.entities.resources import Resource, ResourceKey
from memberscale.core.errors import AlreadyExistsError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Resource)


class ObjectStore(ABC):
    """CRUD surface of the orchestration API, keyed by kind/namespace/name."""

    @abstractmethod
    def create(self, obj: R) -> R:
        ...

    @abstractmethod
    def get(self, cls: Type[R], namespace: str, name: str) -> R:
        ...

    @abstractmethod
    def list(self, cls: Type[R], namespace: str, selector: Optional[Dict[str, str]] = None) -> List[R]:
        ...

    @abstractmethod
    def update(self, obj: R) -> R:
        ...

    @abstractmethod
    def delete(self, cls: Type[Resource], namespace: str, name: str) -> None:
        ...


class InMemoryObjectStore(ObjectStore):
    """Dictionary-backed store; every read and write works on deep copies."""

    def __init__(self) -> None:
        self._objects: Dict[ResourceKey, Resource] = {}
        self._version = 0

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def create(self, obj: R) -> R:
        key = obj.key()
        if key in self._objects:
            raise AlreadyExistsError(f"{obj.KIND} {obj.namespace}/{obj.name} already exists")
        stored = obj.deep_copy()
        stored.resource_version = self._next_version()
        self._objects[key] = stored
        return stored.deep_copy()

    def get(self, cls: Type[R], namespace: str, name: str) -> R:
        stored = self._objects.get((cls.KIND, namespace, name))
        if stored is None:
            raise NotFoundError(f"{cls.KIND} {namespace}/{name} not found")
        return stored.deep_copy()  # type: ignore[return-value]

    def list(self, cls: Type[R], namespace: str, selector: Optional[Dict[str, str]] = None) -> List[R]:
        matched: List[R] = []
        for (kind, ns, _name), stored in sorted(self._objects.items()):
            if kind != cls.KIND or ns != namespace:
                continue
            if selector and not stored.matches(selector):
                continue
            matched.append(stored.deep_copy())  # type: ignore[arg-type]
        return matched

    def update(self, obj: R) -> R:
        key = obj.key()
        stored = self._objects.get(key)
        if stored is None:
            raise NotFoundError(f"{obj.KIND} {obj.namespace}/{obj.name} not found")
        if obj.resource_version != stored.resource_version:
            raise ConflictError(
                f"{obj.KIND} {obj.namespace}/{obj.name}: resource version {obj.resource_version} "
                f"is stale (current {stored.resource_version})"
            )
        updated = obj.deep_copy()
        updated.resource_version = self._next_version()
        self._objects[key] = updated
        return updated.deep_copy()

    def delete(self, cls: Type[Resource], namespace: str, name: str) -> None:
        if self._objects.pop((cls.KIND, namespace, name), None) is None:
            raise NotFoundError(f"{cls.KIND} {namespace}/{name} not found")

    def namespaces(self) -> List[str]:
        return sorted({namespace for _kind, namespace, _name in self._objects})

    def __len__(self) -> int:
        return len(self._objects)

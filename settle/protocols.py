"""Protocols for the resource-specific collaborators settle drives."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from settle.tags import TagSet

__all__ = [
    "StatusSource",
    "TaggingClient",
]


@runtime_checkable
class StatusSource(Protocol):
    """Looks up a resource by identifier.

    Returns the full vendor payload, or None when the resource does not
    exist. Wrap with ``settle.status.refresh_from`` to obtain a poller
    refresh function.
    """

    async def get(self, identifier: str) -> Any | None: ...


@runtime_checkable
class TaggingClient(Protocol):
    """Tag operations of a single service.

    The identifier is typically the resource ARN, although it may be a
    different identifier depending on the service.
    """

    async def list_tags(self, identifier: str) -> Mapping[str, str | None]: ...

    async def add_tags(self, identifier: str, tags: TagSet) -> None: ...

    async def remove_tags(self, identifier: str, keys: frozenset[str]) -> None: ...

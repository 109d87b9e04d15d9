"""Tag reconciliation.

Computes the minimal remove/upsert operations that bring a resource's
observed key-value tags in line with the desired set, and applies them.
Keys under provider-reserved prefixes (``aws:`` by default) are never
removed or rewritten.

Example:
    from settle.tags import reconcile_tags, reserved_prefix

    await reconcile_tags(
        arn,
        observed={"Name": "old", "team": "infra"},
        desired={"Name": "new"},
        remove=client.untag_resource,
        upsert=client.tag_resource,
        is_reserved=reserved_prefix("aws:"),
    )
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from settle.core.exceptions import TagOperationError

if TYPE_CHECKING:
    from settle.protocols import TaggingClient

log = logger.bind(component="tags")

SYSTEM_TAG_PREFIX = "aws:"

type KeyPredicate = Callable[[str], bool]
type RemoveTags = Callable[[str, frozenset[str]], Awaitable[object]]
type UpsertTags = Callable[[str, TagSet], Awaitable[object]]
type TagsLike = Mapping[str, str | None] | Iterable[tuple[str, str | None]] | None


def reserved_prefix(*prefixes: str) -> KeyPredicate:
    """Predicate matching keys under any of the given system prefixes."""
    prefixes = prefixes or (SYSTEM_TAG_PREFIX,)

    def predicate(key: str) -> bool:
        return key.startswith(prefixes)

    return predicate


@dataclass(frozen=True, slots=True)
class IgnoreConfig:
    """Keys the caller has opted out of managing, by exact name or prefix."""

    keys: frozenset[str] = field(default_factory=frozenset)
    key_prefixes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "keys", frozenset(self.keys))
        object.__setattr__(self, "key_prefixes", tuple(self.key_prefixes))

    def matches(self, key: str) -> bool:
        return key in self.keys or (bool(self.key_prefixes) and key.startswith(self.key_prefixes))


class TagSet(Mapping[str, str]):
    """Immutable mapping of tag keys to values.

    Values of None are normalised to the empty string, matching how cloud
    APIs report value-less tags.
    """

    __slots__ = ("_tags",)

    def __init__(self, tags: TagsLike = None) -> None:
        items = tags.items() if isinstance(tags, Mapping) else (tags or ())
        self._tags: dict[str, str] = {str(k): "" if v is None else str(v) for k, v in items}

    def __getitem__(self, key: str) -> str:
        return self._tags[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __repr__(self) -> str:
        return f"TagSet({self._tags!r})"

    def __hash__(self) -> int:
        return hash(frozenset(self._tags.items()))

    def keyset(self) -> frozenset[str]:
        return frozenset(self._tags)

    def removed(self, desired: Mapping[str, str]) -> TagSet:
        """Tags present here but absent from ``desired``."""
        return TagSet({k: v for k, v in self._tags.items() if k not in desired})

    def updated(self, desired: Mapping[str, str]) -> TagSet:
        """Tags in ``desired`` that are new here or carry a different value."""
        desired = TagSet.of(desired)
        return TagSet({k: v for k, v in desired.items() if self._tags.get(k) != v})

    def without(self, predicate: KeyPredicate) -> TagSet:
        return TagSet({k: v for k, v in self._tags.items() if not predicate(k)})

    def ignore_reserved(self, is_reserved: KeyPredicate | None = None) -> TagSet:
        return self.without(is_reserved or reserved_prefix())

    def ignore(self, config: IgnoreConfig | None) -> TagSet:
        if config is None:
            return self
        return self.without(config.matches)

    def merge(self, other: TagsLike) -> TagSet:
        """Union with ``other``; values from ``other`` win on conflicts."""
        return TagSet({**self._tags, **TagSet.of(other)})

    @classmethod
    def of(cls, tags: TagsLike) -> TagSet:
        return tags if isinstance(tags, TagSet) else cls(tags)


EMPTY = TagSet()


@dataclass(frozen=True, slots=True)
class TagDiff:
    """Keys to remove and keys to add or overwrite. Never holds reserved keys."""

    to_remove: frozenset[str] = field(default_factory=frozenset)
    to_upsert: TagSet = EMPTY

    @property
    def is_empty(self) -> bool:
        return not self.to_remove and not self.to_upsert


def diff_tags(
    observed: TagsLike,
    desired: TagsLike,
    *,
    is_reserved: KeyPredicate | None = None,
) -> TagDiff:
    """Compute the minimal change from ``observed`` to ``desired``.

    Keys only in ``observed`` are removed; keys new in ``desired`` or with a
    changed value are upserted; unchanged keys are left alone. Keys matched
    by ``is_reserved`` (default: the ``aws:`` system prefix) are excluded
    from both sides.
    """
    observed = TagSet.of(observed).ignore_reserved(is_reserved)
    desired = TagSet.of(desired).ignore_reserved(is_reserved)
    return TagDiff(
        to_remove=observed.removed(desired).keyset(),
        to_upsert=observed.updated(desired),
    )


async def reconcile_tags(
    identifier: str,
    observed: TagsLike,
    desired: TagsLike,
    *,
    remove: RemoveTags,
    upsert: UpsertTags,
    is_reserved: KeyPredicate | None = None,
) -> TagDiff:
    """Apply the diff between ``observed`` and ``desired`` to a resource.

    Removal is issued before upsert. Either call failing raises
    TagOperationError naming the phase; an already-applied phase is not
    rolled back, and a retried call will find nothing left to do for it.

    Returns:
        The diff that was applied.
    """
    diff = diff_tags(observed, desired, is_reserved=is_reserved)
    if diff.is_empty:
        log.debug("Tags of {identifier} already up to date", identifier=identifier)
        return diff

    if diff.to_remove:
        log.info(
            "Untagging {identifier}: {keys}",
            identifier=identifier,
            keys=sorted(diff.to_remove),
        )
        try:
            await remove(identifier, diff.to_remove)
        except Exception as e:
            raise TagOperationError(identifier, "remove", e) from e

    if diff.to_upsert:
        log.info(
            "Tagging {identifier}: {keys}",
            identifier=identifier,
            keys=sorted(diff.to_upsert),
        )
        try:
            await upsert(identifier, diff.to_upsert)
        except Exception as e:
            raise TagOperationError(identifier, "upsert", e) from e

    return diff


async def update_tags(
    client: TaggingClient,
    identifier: str,
    desired: TagsLike,
    *,
    is_reserved: KeyPredicate | None = None,
    ignore: IgnoreConfig | None = None,
) -> TagDiff:
    """List a resource's current tags and reconcile them with ``desired``.

    Keys matched by ``ignore`` are dropped from both sides before diffing,
    so tags managed elsewhere are neither removed nor overwritten.
    """
    try:
        observed = TagSet.of(await client.list_tags(identifier))
    except Exception as e:
        raise TagOperationError(identifier, "list", e) from e

    return await reconcile_tags(
        identifier,
        observed.ignore(ignore),
        TagSet.of(desired).ignore(ignore),
        remove=client.remove_tags,
        upsert=client.add_tags,
        is_reserved=is_reserved,
    )

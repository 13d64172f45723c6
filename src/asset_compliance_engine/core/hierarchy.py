"""HierarchyResolver: ancestor identifiers to display names.

Change-feed events carry ancestor identifiers (folders/123, projects/456)
but not their human-readable names. Names come from the hierarchy cache
that the inventory jobs keep populated, with a live resource-manager lookup
as fallback. Resolution never fails and is bounded in time: anything that
cannot be resolved before its deadline is reported as "unknown", which only
degrades display-name completeness.
"""

import asyncio
from typing import Any

from asset_compliance_engine.core.interfaces import IDirectoryLookup, IHierarchyCache
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)

UNKNOWN_DISPLAY_NAME = "unknown"

# Ancestor type -> field of resource.data holding its display name
_DISPLAY_NAME_FIELDS: dict[str, str] = {
    "organizations": "displayName",
    "folders": "displayName",
    "projects": "name",
}

_CACHE_KEY_PREFIX = "//cloudresourcemanager.googleapis.com/"


def ancestor_type_of(ancestor: str) -> str:
    """Return the type prefix of an ancestor identifier, e.g. folders."""
    return ancestor.split("/")[0]


def cache_key_for(collection_id: str, ancestor: str) -> str:
    """Build the normalized cache key of an ancestor.

    Document ids cannot contain slashes, so the full resource name has every
    slash replaced by a backslash.

    Args:
        collection_id: Collection grouping cached asset documents.
        ancestor: Ancestor identifier, e.g. folders/123.

    Returns:
        The collection id, a slash, then the backslashed resource name.
    """
    document_id = (_CACHE_KEY_PREFIX + ancestor).replace("/", "\\")
    return f"{collection_id}/{document_id}"


def extract_display_name(document: Any, ancestor_type: str) -> str | None:
    """Pull the type-appropriate display field out of a cached document.

    Expected shape: {"asset": {"resource": {"data": {<field>: str}}}}.

    Returns:
        The display name, or None on any shape mismatch.
    """
    field_name = _DISPLAY_NAME_FIELDS.get(ancestor_type)
    match document:
        case {"asset": {"resource": {"data": {**data}}}} if field_name is not None:
            value = data.get(field_name)
            if isinstance(value, str):
                return value
    return None


class HierarchyResolver:
    """Resolve ancestors to display names via cache, then live fallback.

    Args:
        cache: Hierarchy cache capability.
        directory: Live lookup used when the cache has no document.
        collection_id: Collection grouping cached asset documents.
        max_attempts: Cache read attempts per ancestor.
        backoff_ms: Linear backoff step between attempts.
        read_timeout_ms: Deadline of one cache read.
        total_timeout_s: Deadline of one resolve_display_names call. Ancestors
            not reached in time resolve to "unknown".
    """

    def __init__(
        self,
        cache: IHierarchyCache,
        directory: IDirectoryLookup | None,
        collection_id: str,
        max_attempts: int = 10,
        backoff_ms: int = 100,
        read_timeout_ms: int = 1000,
        total_timeout_s: float = 15.0,
    ) -> None:
        self._cache = cache
        self._directory = directory
        self._collection_id = collection_id
        self._max_attempts = max(1, max_attempts)
        self._backoff_s = backoff_ms / 1000.0
        self._read_timeout_s = read_timeout_ms / 1000.0
        self._total_timeout_s = total_timeout_s

    async def resolve_display_names(self, ancestors: list[str]) -> list[str]:
        """Resolve every ancestor, preserving input order and length.

        Args:
            ancestors: Ancestor identifiers, nearest first.

        Returns:
            One display name per ancestor, "unknown" when unresolved.
        """
        names = [UNKNOWN_DISPLAY_NAME] * len(ancestors)
        resolved = 0
        try:
            async with asyncio.timeout(self._total_timeout_s):
                for ancestor in ancestors:
                    names[resolved] = await self._resolve_one(ancestor)
                    resolved += 1
        except TimeoutError:
            logger.warning(
                "Ancestor resolution ran out of time",
                resolved=resolved,
                ancestors_count=len(ancestors),
                timeout_s=self._total_timeout_s,
            )
        return names

    async def _resolve_one(self, ancestor: str) -> str:
        ancestor_type = ancestor_type_of(ancestor)
        if ancestor_type not in _DISPLAY_NAME_FIELDS:
            return UNKNOWN_DISPLAY_NAME

        key = cache_key_for(self._collection_id, ancestor)
        document, found = await self._read_cache(key)
        if found:
            return extract_display_name(document, ancestor_type) or UNKNOWN_DISPLAY_NAME

        logger.warning("Ancestor not found in hierarchy cache", ancestor=ancestor, cache_key=key)
        return await self._live_lookup(ancestor, ancestor_type)

    async def _read_cache(self, key: str) -> tuple[Any, bool]:
        """Read with bounded retries and linear backoff.

        A miss is final. Only transport errors and read timeouts are retried.
        """
        for attempt in range(self._max_attempts):
            try:
                async with asyncio.timeout(self._read_timeout_s):
                    return await self._cache.lookup(key)
            except Exception as exc:
                logger.error(
                    "Hierarchy cache read failed",
                    cache_key=key,
                    attempt=attempt,
                    error=str(exc) or type(exc).__name__,
                )
            if attempt + 1 < self._max_attempts:
                await asyncio.sleep(attempt * self._backoff_s)
        return None, False

    async def _live_lookup(self, ancestor: str, ancestor_type: str) -> str:
        if self._directory is None:
            return UNKNOWN_DISPLAY_NAME
        ancestor_id = ancestor.split("/", 1)[1] if "/" in ancestor else ""
        try:
            display_name = await self._directory.get_display_name(ancestor_type, ancestor_id)
        except Exception as exc:
            logger.warning("Live ancestor lookup failed", ancestor=ancestor, error=str(exc))
            return UNKNOWN_DISPLAY_NAME
        if not isinstance(display_name, str) or not display_name:
            return UNKNOWN_DISPLAY_NAME
        return display_name

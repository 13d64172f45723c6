"""Tests for HierarchyResolver.

The resolver must never raise and must always return one string per
ancestor, whatever the cache or the live lookup do.
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest

from asset_compliance_engine.core.hierarchy import (
    UNKNOWN_DISPLAY_NAME,
    HierarchyResolver,
    cache_key_for,
    extract_display_name,
)
from tests.conftest import make_cached_document


def make_resolver(
    cache: Any,
    directory: Any = None,
    max_attempts: int = 3,
    read_timeout_ms: int = 1000,
    total_timeout_s: float = 5.0,
) -> HierarchyResolver:
    return HierarchyResolver(
        cache=cache,
        directory=directory,
        collection_id="assets",
        max_attempts=max_attempts,
        backoff_ms=0,
        read_timeout_ms=read_timeout_ms,
        total_timeout_s=total_timeout_s,
    )


class DictCache:
    """In-memory hierarchy cache keyed like the real one."""

    def __init__(self, documents: dict[str, Any]) -> None:
        self.documents = documents
        self.keys_read: list[str] = []

    async def lookup(self, key: str) -> tuple[Any, bool]:
        self.keys_read.append(key)
        if key in self.documents:
            return self.documents[key], True
        return None, False


class TestCacheKey:
    def test_cache_key_replaces_every_slash(self) -> None:
        key = cache_key_for("assets", "folders/123")
        assert key == "assets/" + "\\\\cloudresourcemanager.googleapis.com\\folders\\123"

    def test_cache_key_keeps_collection_separator(self) -> None:
        assert cache_key_for("ram-assets", "projects/p1").startswith("ram-assets/")
        assert "/" not in cache_key_for("ram-assets", "projects/p1").split("/", 1)[1]


class TestExtractDisplayName:
    def test_folder_uses_display_name(self) -> None:
        document = make_cached_document("displayName", "Finance")
        assert extract_display_name(document, "folders") == "Finance"

    def test_project_uses_name(self) -> None:
        document = make_cached_document("name", "billing-prod")
        assert extract_display_name(document, "projects") == "billing-prod"

    def test_project_ignores_display_name(self) -> None:
        document = make_cached_document("displayName", "Billing")
        assert extract_display_name(document, "projects") is None

    @pytest.mark.parametrize(
        "document",
        [
            None,
            "not a document",
            {},
            {"asset": []},
            {"asset": {"resource": None}},
            {"asset": {"resource": {"data": "flat"}}},
            make_cached_document("displayName", 42),
        ],
    )
    def test_malformed_documents_yield_none(self, document: Any) -> None:
        assert extract_display_name(document, "organizations") is None


class TestHierarchyResolver:
    """Tests for HierarchyResolver.resolve_display_names."""

    @pytest.mark.asyncio()
    async def test_resolves_each_ancestor_from_cache(self) -> None:
        """Cached documents are read with the type specific display field."""
        cache = DictCache(
            {
                cache_key_for("assets", "projects/p1"): make_cached_document("name", "billing-prod"),
                cache_key_for("assets", "folders/f1"): make_cached_document("displayName", "Finance"),
                cache_key_for("assets", "organizations/o1"): make_cached_document("displayName", "example.com"),
            }
        )
        resolver = make_resolver(cache)

        names = await resolver.resolve_display_names(["projects/p1", "folders/f1", "organizations/o1"])

        assert names == ["billing-prod", "Finance", "example.com"]

    @pytest.mark.asyncio()
    async def test_unknown_ancestor_type_is_not_looked_up(self) -> None:
        cache = DictCache({})
        resolver = make_resolver(cache)

        names = await resolver.resolve_display_names(["billingAccounts/123"])

        assert names == [UNKNOWN_DISPLAY_NAME]
        assert cache.keys_read == []

    @pytest.mark.asyncio()
    async def test_malformed_cached_document_yields_unknown(self) -> None:
        """A found document with the wrong shape is not retried and not looked up live."""
        cache = DictCache({cache_key_for("assets", "folders/f1"): {"asset": "oops"}})
        directory = AsyncMock()
        resolver = make_resolver(cache, directory)

        names = await resolver.resolve_display_names(["folders/f1"])

        assert names == [UNKNOWN_DISPLAY_NAME]
        assert len(cache.keys_read) == 1
        directory.get_display_name.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_cache_miss_falls_back_to_live_lookup_without_retry(self, mock_cache: AsyncMock) -> None:
        """A miss is final; only errors are retried."""
        directory = AsyncMock()
        directory.get_display_name.return_value = "Marketing"
        resolver = make_resolver(mock_cache, directory, max_attempts=4)

        names = await resolver.resolve_display_names(["folders/f9"])

        assert names == ["Marketing"]
        assert mock_cache.lookup.await_count == 1
        directory.get_display_name.assert_awaited_once_with("folders", "f9")

    @pytest.mark.asyncio()
    async def test_cache_errors_are_retried_and_never_raised(self) -> None:
        cache = AsyncMock()
        cache.lookup.side_effect = [ConnectionError("redis down"), (make_cached_document("displayName", "Ops"), True)]
        resolver = make_resolver(cache)

        names = await resolver.resolve_display_names(["folders/f2"])

        assert names == ["Ops"]
        assert cache.lookup.await_count == 2

    @pytest.mark.asyncio()
    async def test_failing_live_lookup_yields_unknown(self, mock_cache: AsyncMock) -> None:
        directory = AsyncMock()
        directory.get_display_name.side_effect = RuntimeError("403 Forbidden")
        resolver = make_resolver(mock_cache, directory)

        names = await resolver.resolve_display_names(["organizations/o1", "projects/p1"])

        assert names == [UNKNOWN_DISPLAY_NAME, UNKNOWN_DISPLAY_NAME]

    @pytest.mark.asyncio()
    async def test_no_live_lookup_configured_yields_unknown(self, mock_cache: AsyncMock) -> None:
        resolver = make_resolver(mock_cache, directory=None)

        assert await resolver.resolve_display_names(["projects/p1"]) == [UNKNOWN_DISPLAY_NAME]

    @pytest.mark.asyncio()
    async def test_output_has_same_length_and_order_as_input(self) -> None:
        """Mixed inputs resolve independently; one failure does not shift the others."""
        cache = DictCache({cache_key_for("assets", "folders/f1"): make_cached_document("displayName", "Finance")})
        resolver = make_resolver(cache, max_attempts=1)
        ancestors = ["projects/missing", "folders/f1", "garbage", "", "organizations/o1"]

        names = await resolver.resolve_display_names(ancestors)

        assert len(names) == len(ancestors)
        assert names[1] == "Finance"
        assert all(isinstance(name, str) for name in names)

    @pytest.mark.asyncio()
    async def test_empty_ancestors(self, mock_cache: AsyncMock) -> None:
        resolver = make_resolver(mock_cache)

        assert await resolver.resolve_display_names([]) == []
        mock_cache.lookup.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_stalled_cache_read_times_out_and_falls_back(self) -> None:
        async def stall(key: str) -> tuple[Any, bool]:
            await asyncio.sleep(10)
            return None, False

        cache = AsyncMock()
        cache.lookup.side_effect = stall
        directory = AsyncMock()
        directory.get_display_name.return_value = "Finance"
        resolver = make_resolver(cache, directory, max_attempts=2, read_timeout_ms=20)

        names = await resolver.resolve_display_names(["folders/f1"])

        assert names == ["Finance"]
        assert cache.lookup.await_count == 2

    @pytest.mark.asyncio()
    async def test_total_budget_leaves_remaining_ancestors_unknown(self, mock_cache: AsyncMock) -> None:
        """Slow lookups degrade display names instead of raising."""
        calls: list[str] = []

        async def slow_lookup(ancestor_type: str, ancestor_id: str) -> str:
            calls.append(ancestor_id)
            if len(calls) > 1:
                await asyncio.sleep(10)
            return "Resolved"

        directory = AsyncMock()
        directory.get_display_name.side_effect = slow_lookup
        resolver = make_resolver(mock_cache, directory, total_timeout_s=0.05)

        names = await resolver.resolve_display_names(["folders/f1", "folders/f2", "organizations/o1"])

        assert names == ["Resolved", UNKNOWN_DISPLAY_NAME, UNKNOWN_DISPLAY_NAME]
        assert calls == ["f1", "f2"]

"""DocumentEnricher: raw change-feed payload to enriched asset document.

Enrichment adds what rule templates need but the feed does not carry:
- ancestryPath: root-first, slash-joined, legacy vocabulary
- ancestorsDisplayName / ancestryPathDisplayName: resolved names
- owner / violationResolver: read from the asset labels
- assetInventoryOrigin defaulted to real-time
- snake_case duplicates of assetType, iamPolicy and ancestryPath
"""

from typing import Any

from pydantic import ValidationError

from asset_compliance_engine.core.hierarchy import HierarchyResolver
from asset_compliance_engine.core.models import (
    ORIGIN_REAL_TIME,
    AssetChangeEvent,
    EnrichedAsset,
    EnrichedFeedMessage,
)
from asset_compliance_engine.errors import MalformedEventError

# Plural container words of the feed -> singular words of the policy library
_LEGACY_VOCABULARY: tuple[tuple[str, str], ...] = (
    ("organizations", "organization"),
    ("folders", "folder"),
    ("projects", "project"),
)


def make_compatible(path: str) -> str:
    """Rewrite an ancestry path with the legacy policy-library vocabulary."""
    for current, legacy in _LEGACY_VOCABULARY:
        path = path.replace(current, legacy)
    return path


def build_ancestry_path(ancestors: list[str]) -> str:
    """Turn a nearest-first ancestor list into a root-first path.

    Args:
        ancestors: Ancestor identifiers or names, nearest first.

    Returns:
        Slash-joined root-first path with legacy vocabulary applied.
    """
    return make_compatible("/".join(reversed(ancestors)))


def get_asset_label_value(label_key: str, resource: Any) -> str:
    """Read one label from resource.data.labels. Absence yields an empty string."""
    match resource:
        case {"data": {"labels": {**labels}}}:
            value = labels.get(label_key)
            if isinstance(value, str):
                return value
    return ""


def parse_event(payload: bytes) -> AssetChangeEvent:
    """Deserialize an inbound payload.

    Raises:
        MalformedEventError: If the payload is not a valid asset change event.
    """
    try:
        return AssetChangeEvent.model_validate_json(payload)
    except ValidationError as exc:
        raise MalformedEventError(f"Unparseable asset change event: {exc}") from exc


class DocumentEnricher:
    """Build the enriched feed message evaluated by the rules.

    Args:
        resolver: Resolves ancestor display names.
        owner_label_key: Label key holding the asset owner.
        violation_resolver_label_key: Label key holding the violation resolver.
    """

    def __init__(
        self,
        resolver: HierarchyResolver,
        owner_label_key: str,
        violation_resolver_label_key: str,
    ) -> None:
        self._resolver = resolver
        self._owner_label_key = owner_label_key
        self._violation_resolver_label_key = violation_resolver_label_key

    async def enrich_payload(self, payload: bytes) -> EnrichedFeedMessage:
        """Parse then enrich a raw payload.

        Raises:
            MalformedEventError: If the payload cannot be parsed.
        """
        return await self.enrich(parse_event(payload))

    async def enrich(self, event: AssetChangeEvent) -> EnrichedFeedMessage:
        """Derive the enriched fields of one event.

        Args:
            event: The parsed change-feed message.

        Returns:
            The enriched feed message. Derived fields live only for this invocation.
        """
        asset = event.asset
        ancestry_path = build_ancestry_path(asset.ancestors)
        display_names = await self._resolver.resolve_display_names(asset.ancestors)

        enriched = EnrichedAsset.model_validate(
            {
                "name": asset.name,
                "assetType": asset.asset_type,
                "ancestors": list(asset.ancestors),
                "resource": asset.resource,
                "iamPolicy": asset.iam_policy,
                "owner": get_asset_label_value(self._owner_label_key, asset.resource),
                "violationResolver": get_asset_label_value(
                    self._violation_resolver_label_key, asset.resource
                ),
                "ancestryPath": ancestry_path,
                "ancestorsDisplayName": display_names,
                "ancestryPathDisplayName": build_ancestry_path(display_names),
                "ancestry_path": ancestry_path,
                "asset_type": asset.asset_type,
                "iam_policy": asset.iam_policy,
            }
        )
        return EnrichedFeedMessage(
            asset=enriched,
            window=event.window,
            deleted=event.deleted,
            origin=event.origin or ORIGIN_REAL_TIME,
        )

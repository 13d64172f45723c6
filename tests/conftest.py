"""Test fixtures for asset-compliance-engine.

Provides:
- rule: A fixed RuleIdentity for the evaluated rule
- mock_opa_client: A mock OPAClient whose evaluate() returns an empty result
- mock_sink: A mock evidence sink acknowledging every send
- mock_cache: A mock hierarchy cache that never finds anything
- make_event_payload / make_feed_message / make_audit_entry / make_cached_document:
  builders for the documents exchanged along the pipeline
"""

import json
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

from asset_compliance_engine.core.models import (
    EnrichedFeedMessage,
    RuleEvaluationResult,
    RuleExpression,
    RuleIdentity,
)

RULE_NAME = "monitor_bucket_public_access"
RULE_DEPLOYMENT_TIME = datetime(2024, 1, 15, 9, 30, tzinfo=UTC)
WINDOW_START = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
AUDIT_QUERY_TEXT = "data.validator.gcp.lib.audit"


def make_event_payload(
    name: str = "//storage.googleapis.com/res1",
    ancestors: list[str] | None = None,
    deleted: bool = False,
    origin: str | None = None,
    labels: dict[str, str] | None = None,
    iam_policy: Any = None,
) -> bytes:
    """Serialize one change-feed event the way the inventory feed sends it."""
    event: dict[str, Any] = {
        "asset": {
            "name": name,
            "assetType": "storage.googleapis.com/Bucket",
            "ancestors": ancestors if ancestors is not None else ["folders/folderX"],
            "resource": {"data": {"labels": labels or {}}},
        },
        "window": {"startTime": WINDOW_START.isoformat()},
        "deleted": deleted,
    }
    if iam_policy is not None:
        event["asset"]["iamPolicy"] = iam_policy
    if origin is not None:
        event["origin"] = origin
    return json.dumps(event).encode("utf-8")


def make_feed_message(name: str = "//storage.googleapis.com/res1", deleted: bool = False) -> EnrichedFeedMessage:
    """Build an already enriched feed message."""
    return EnrichedFeedMessage.model_validate(
        {
            "asset": {
                "name": name,
                "assetType": "storage.googleapis.com/Bucket",
                "ancestors": ["folders/folderX"],
                "ancestryPath": "folder/folderX",
                "ancestorsDisplayName": ["Finance"],
                "ancestryPathDisplayName": "Finance",
            },
            "window": {"startTime": WINDOW_START.isoformat()},
            "deleted": deleted,
        }
    )


def make_audit_entry(msg: str = "Bucket is public", constraint_name: str = "no_public_bucket") -> dict[str, Any]:
    """Build one audit result entry as the audit rule reports it."""
    return {
        "violation": {"msg": msg, "details": {"resource": "res1"}},
        "constraint_config": {
            "apiVersion": "constraints.gatekeeper.sh/v1alpha1",
            "kind": "GCPStorageBucketPublicConstraintV1",
            "metadata": {"name": constraint_name, "annotations": {"category": "data"}},
            "spec": {"severity": "high", "match": {"target": ["organization/*"]}, "parameters": {}},
        },
    }


def make_result(value: Any) -> RuleEvaluationResult:
    """Wrap a value as the single expression of an OPA answer."""
    return RuleEvaluationResult(expressions=[RuleExpression(text=AUDIT_QUERY_TEXT, value=value)])


def make_cached_document(field: str, value: Any) -> dict[str, Any]:
    """Build a hierarchy cache document holding one display field."""
    return {"asset": {"resource": {"data": {field: value}}}}


@pytest.fixture()
def rule() -> RuleIdentity:
    """Return the identity of the rule under test."""
    return RuleIdentity(
        rule_name=RULE_NAME,
        rule_deployment_time=RULE_DEPLOYMENT_TIME,
        project_id="ram-prd",
        environment="test",
    )


@pytest.fixture()
def mock_opa_client() -> AsyncMock:
    """Create a mock OPAClient answering every evaluation with no expression.

    Returns:
        AsyncMock with evaluate() returning an empty RuleEvaluationResult.
    """
    client = AsyncMock()
    client.evaluate.return_value = RuleEvaluationResult(expressions=[])
    client.health_check.return_value = True
    return client


@pytest.fixture()
def mock_sink() -> AsyncMock:
    """Create a mock evidence sink that acknowledges every record."""
    return AsyncMock()


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Create a mock hierarchy cache that reports a miss for every key."""
    cache = AsyncMock()
    cache.lookup.return_value = (None, False)
    return cache

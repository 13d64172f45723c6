"""Domain models for the compliance engine.

Inbound:
- AssetChangeEvent: one change-feed message (asset snapshot + window + flags)

Derived:
- EnrichedAsset / EnrichedFeedMessage: the canonical document handed to OPA
  and embedded in violations

Engine contract:
- RuleExpression / RuleEvaluationResult: the opaque OPA answer

Outbound evidence:
- ComplianceStatus: exactly one per invocation
- Violation: zero or more per invocation

All models serialize with camelCase keys (model_dump(by_alias=True)), which
is the wire format of the change feed and of both evidence channels.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ORIGIN_REAL_TIME = "real-time"
ORIGIN_BATCH_EXPORT = "batch-export"
ORIGIN_BATCH_LISTGROUPS = "batch-listgroups"

# Shared by ComplianceStatus and every Violation of the same invocation.
IdempotencyKey = tuple[str, datetime, str, datetime]


class CamelModel(BaseModel):
    """Immutable base model exchanging camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Window(CamelModel):
    """Change-feed time window. startTime is the asset inventory timestamp."""

    start_time: datetime


class AssetSnapshot(CamelModel):
    """A cloud resource or IAM policy as carried by the change feed.

    Attributes:
        name: Globally unique asset identifier.
        asset_type: Asset type, e.g. storage.googleapis.com/Bucket.
        ancestors: Ancestor identifiers, nearest first.
        resource: Opaque resource payload (resource feeds).
        iam_policy: Opaque IAM policy payload (IAM policy feeds).
    """

    name: str
    asset_type: str = ""
    ancestors: list[str] = Field(default_factory=list)
    resource: Any = None
    iam_policy: Any = None


class AssetChangeEvent(CamelModel):
    """One inbound change-feed message.

    origin is free text set by the producer: real-time for the change feed,
    batch-export or batch-listgroups for the inventory jobs.
    """

    asset: AssetSnapshot
    window: Window
    deleted: bool = False
    origin: str | None = None

    @field_validator("origin", mode="before")
    @classmethod
    def _blank_origin_is_unset(cls, value: Any) -> Any:
        if value == "":
            return None
        return value


class EnrichedAsset(AssetSnapshot):
    """Asset snapshot plus the fields derived for rule evaluation.

    The three *_legacy fields duplicate assetType, iamPolicy and ancestryPath
    under the snake_case keys expected by existing policy-library templates.
    """

    owner: str = ""
    violation_resolver: str = ""
    ancestry_path: str = ""
    ancestors_display_name: list[str] = Field(default_factory=list)
    ancestry_path_display_name: str = ""
    ancestry_path_legacy: str = Field(default="", alias="ancestry_path")
    asset_type_legacy: str = Field(default="", alias="asset_type")
    iam_policy_legacy: Any = Field(default=None, alias="iam_policy")


class EnrichedFeedMessage(CamelModel):
    """The change-feed message after enrichment, origin always set."""

    asset: EnrichedAsset
    window: Window
    deleted: bool = False
    origin: str = ORIGIN_REAL_TIME


@dataclass(frozen=True)
class RuleExpression:
    """One expression of an OPA answer. Value is untyped on purpose."""

    text: str
    value: Any


@dataclass(frozen=True)
class RuleEvaluationResult:
    """Opaque OPA answer. Only the first expression's value is consumed."""

    expressions: list[RuleExpression] = field(default_factory=list)


class NonCompliance(CamelModel):
    """What the rule reported: a message and free-form details."""

    message: str | None = None
    metadata: dict[str, Any] | None = None


class FunctionConfig(CamelModel):
    """Identity of the rule deployment that produced a violation."""

    rule_name: str
    project_context: str
    environment: str
    rule_deployment_time: datetime


class ConstraintMetadata(CamelModel):
    name: str | None = None
    annotations: dict[str, Any] | None = None


class ConstraintSpec(CamelModel):
    severity: str | None = None
    match: dict[str, Any] | None = None
    parameters: dict[str, Any] | None = None


class ConstraintConfig(CamelModel):
    """Content of the constraint.yaml that matched the asset."""

    api_version: str | None = None
    kind: str | None = None
    metadata: ConstraintMetadata = Field(default_factory=ConstraintMetadata)
    spec: ConstraintSpec = Field(default_factory=ConstraintSpec)


class Violation(CamelModel):
    """One piece of evidence explaining a single rule failure for an asset."""

    non_compliance: NonCompliance
    function_config: FunctionConfig
    constraint_config: ConstraintConfig
    feed_message: EnrichedFeedMessage
    rule_modules_source: dict[str, str] = Field(default_factory=dict)

    @property
    def idempotency_key(self) -> IdempotencyKey:
        return (
            self.feed_message.asset.name,
            self.feed_message.window.start_time,
            self.function_config.rule_name,
            self.function_config.rule_deployment_time,
        )


class ComplianceStatus(CamelModel):
    """Per-asset, per-rule pass/fail record. A deleted asset is always compliant."""

    asset_name: str
    asset_inventory_timestamp: datetime
    asset_inventory_origin: str
    rule_name: str
    rule_deployment_timestamp: datetime
    compliant: bool
    deleted: bool = False

    @model_validator(mode="after")
    def _deleted_implies_compliant(self) -> "ComplianceStatus":
        if self.deleted and not self.compliant:
            raise ValueError("a deleted asset cannot be non compliant")
        return self

    @property
    def idempotency_key(self) -> IdempotencyKey:
        return (
            self.asset_name,
            self.asset_inventory_timestamp,
            self.rule_name,
            self.rule_deployment_timestamp,
        )


@dataclass(frozen=True)
class RuleIdentity:
    """Static identity of the rule this engine instance evaluates."""

    rule_name: str
    rule_deployment_time: datetime
    project_id: str = ""
    environment: str = ""

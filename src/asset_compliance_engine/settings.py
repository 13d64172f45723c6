"""Service settings for asset-compliance-engine.

One engine instance evaluates one rule, so the rule identity (name and
deployment time) is configuration rather than request data.

Settings use the ASSET_COMPLIANCE_ prefix and cover:
- Rule identity and retry window
- Asset contact labels
- Evidence channels (Kafka topics)
- Hierarchy cache (Redis) and live resource-manager fallback
- OPA (Open Policy Agent) integration and the rule catalog location
- Logging
"""

from datetime import datetime

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for asset-compliance-engine.

    Read once at process start. Environment variable prefix: ASSET_COMPLIANCE_
    """

    service_name: str = "asset-compliance-engine"

    # -------------------------------------------------------------------------
    # Rule identity
    # -------------------------------------------------------------------------

    rule_name: str = Field(
        description="Name of the rule evaluated by this instance. Becomes ruleName in every evidence record.",
    )
    rule_deployment_time: datetime = Field(
        description="RFC 3339 deployment timestamp of the rule. Part of the downstream idempotency key.",
    )
    environment: str = Field(
        default="dev",
        description="Execution environment label copied into violation records, e.g. dev, prd.",
    )
    project_id: str = Field(
        default="",
        description="Project hosting the engine. Copied into violation records as projectContext.",
    )

    # -------------------------------------------------------------------------
    # Retry window and invocation budget
    # -------------------------------------------------------------------------

    retry_timeout_seconds: int = Field(
        default=600,
        description="Events older than this many seconds are dropped instead of retried.",
    )
    invocation_timeout_seconds: float = Field(
        default=60.0,
        description="Wall-clock budget for one invocation. Expiry triggers redelivery.",
    )

    # -------------------------------------------------------------------------
    # Asset contacts
    # -------------------------------------------------------------------------

    owner_label_key_name: str = Field(
        default="owner",
        description="Label key identifying the asset owner.",
    )
    violation_resolver_label_key_name: str = Field(
        default="violation_resolver",
        description="Label key identifying who resolves violations on the asset.",
    )

    # -------------------------------------------------------------------------
    # Evidence channels
    # -------------------------------------------------------------------------

    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Comma-separated Kafka bootstrap servers for the evidence producer.",
    )
    status_topic: str = Field(
        default="ram.compliance_status",
        description="Topic receiving one compliance status record per invocation.",
    )
    violation_topic: str = Field(
        default="ram.violations",
        description="Topic receiving violation records.",
    )

    # -------------------------------------------------------------------------
    # Hierarchy cache and live fallback
    # -------------------------------------------------------------------------

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL of the hierarchy cache populated by the inventory jobs.",
    )
    assets_collection_id: str = Field(
        default="assets",
        description="Collection grouping cached asset documents. Prefixes every cache key.",
    )
    hierarchy_cache_retries: int = Field(
        default=10,
        description="Read attempts per ancestor on cache errors. A miss falls back to the live lookup at once.",
    )
    hierarchy_cache_backoff_ms: int = Field(
        default=100,
        description="Linear backoff step between cache read attempts in milliseconds.",
    )
    hierarchy_cache_read_timeout_ms: int = Field(
        default=1000,
        description="Deadline of one cache read, also the Redis socket timeout, in milliseconds.",
    )
    hierarchy_resolve_timeout_seconds: float = Field(
        default=15.0,
        description="Total time spent resolving the ancestors of one event. Ancestors left over show as unknown.",
    )
    resource_manager_url: str = Field(
        default="https://cloudresourcemanager.googleapis.com",
        description="Base URL of the live organization / folder / project lookup API.",
    )
    metadata_token_url: str = Field(
        default="http://metadata.google.internal/computeMetadata/v1/instance/service-accounts/default/token",
        description="Metadata server endpoint issuing access tokens for the live lookup.",
    )

    # -------------------------------------------------------------------------
    # OPA (Open Policy Agent) integration
    # -------------------------------------------------------------------------

    opa_url: str = Field(
        default="http://localhost:8181",
        description="OPA REST API endpoint. OPA runs as a sidecar alongside this service.",
    )
    opa_eval_timeout_ms: int = Field(
        default=5000,
        description="Timeout for OPA working-document writes and evaluations in milliseconds.",
    )
    opa_assets_data_path: str = Field(
        default="assets",
        description="OPA data path of the working document holding the asset collection.",
    )
    opa_package: str = Field(
        default="validator.gcp.lib",
        description="Rego package (module namespace) holding the audit query.",
    )
    opa_query: str = Field(
        default="audit",
        description="Rule queried inside opa_package.",
    )

    # -------------------------------------------------------------------------
    # Rule catalog
    # -------------------------------------------------------------------------

    rule_catalog_path: str = Field(
        default="./opa",
        description="Folder holding the rule catalog pushed to OPA at startup.",
    )
    rego_modules_folder_name: str = Field(
        default="modules",
        description="Sub-folder of rule_catalog_path holding *.rego modules.",
    )
    constraints_folder_name: str = Field(
        default="constraints",
        description="Sub-folder of rule_catalog_path holding <name>/constraint.yaml files.",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    log_level: str = Field(default="info", description="Root log level.")
    log_json: bool = Field(default=True, description="Render logs as JSON lines.")

    model_config = SettingsConfigDict(env_prefix="ASSET_COMPLIANCE_")

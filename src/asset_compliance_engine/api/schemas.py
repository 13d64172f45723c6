"""Pydantic request and response schemas for the compliance engine API.

Resources:
- PushEnvelope: one event delivered by the push subscription
- EventProcessedResponse: outcome of one delivery
- HealthResponse: liveness and startup state
"""

from datetime import datetime
from typing import Literal

from pydantic import Base64Bytes, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Push delivery
# ---------------------------------------------------------------------------


class PushMessage(BaseModel):
    """The delivered message. data holds the base64 encoded change event."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    data: Base64Bytes = Field(
        default=b"",
        description="Change-feed event, base64 encoded on the wire",
    )
    message_id: str = Field(
        default="",
        description="Delivery identifier assigned by the messaging platform",
    )
    publish_time: datetime | None = Field(
        default=None,
        description="First publication time of the event. Drives the retry window.",
    )
    attributes: dict[str, str] = Field(
        default_factory=dict,
        description="Message attributes set by the publisher",
    )


class PushEnvelope(BaseModel):
    """Request body posted by the push subscription."""

    message: PushMessage = Field(description="The delivered message")
    subscription: str = Field(default="", description="Full subscription name")


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class EventProcessedResponse(BaseModel):
    """Outcome of one delivery. Any 2xx acknowledges the event."""

    status: Literal["processed", "skipped"] = Field(description="processed | skipped")
    message_id: str = Field(description="Delivery identifier echoed back")
    reason: str | None = Field(default=None, description="Why the event was skipped")
    compliant: bool | None = Field(default=None, description="Compliance verdict when processed")
    violations_count: int = Field(default=0, description="Violations published for the asset")


class RetryResponse(BaseModel):
    """Body of a 503 answer, which makes the platform redeliver the event."""

    status: Literal["retry"] = "retry"
    message_id: str = Field(description="Delivery identifier echoed back")
    error: str = Field(description="Transient error description")


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"] = Field(description="ok when startup succeeded and OPA answers")
    init_failed: bool = Field(description="True when one-time setup failed; every event is then dropped")
    opa_reachable: bool = Field(description="Result of the OPA health probe")

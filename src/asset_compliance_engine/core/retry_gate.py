"""RetryGate: admission control run before any pipeline work.

The push platform redelivers an event for as long as the invocation fails.
The gate bounds that loop:
- setup failures are never retried (only a cold restart fixes them)
- events older than the retry window are dropped
- missing invocation metadata is assumed to be a platform hiccup and retried
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from asset_compliance_engine.errors import TransientError
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Proceed:
    """Run the pipeline."""


@dataclass(frozen=True)
class PermanentSkip:
    """Acknowledge and drop the event."""

    reason: str


@dataclass(frozen=True)
class RetryableFailure:
    """Fail the invocation so the event is redelivered."""

    error: Exception


AdmissionDecision = Proceed | PermanentSkip | RetryableFailure

SKIP_INIT_FAILED = "init_failed"
SKIP_EXPIRED = "retry_window_expired"


def admit(
    event: Any,
    init_failed: bool,
    retry_window_seconds: float,
    event_timestamp: datetime | None,
    now: datetime | None = None,
) -> AdmissionDecision:
    """Decide whether an invocation may run.

    Args:
        event: The inbound event, only used for logging.
        init_failed: Whether one-time setup failed.
        retry_window_seconds: Redelivery budget measured from the event timestamp.
        event_timestamp: When the event was first published.
        now: Current time, defaults to the wall clock.

    Returns:
        Proceed, PermanentSkip or RetryableFailure.
    """
    if event_timestamp is None:
        return RetryableFailure(TransientError("Invocation metadata carries no event timestamp"))

    if init_failed:
        logger.error("Setup failed, dropping event", event_ref=event)
        return PermanentSkip(SKIP_INIT_FAILED)

    current = now or datetime.now(UTC)
    if event_timestamp.tzinfo is None:
        event_timestamp = event_timestamp.replace(tzinfo=UTC)
    expiration = event_timestamp + timedelta(seconds=retry_window_seconds)
    if current > expiration:
        logger.error(
            "Too many retries for expired event",
            event_ref=event,
            event_timestamp=event_timestamp.isoformat(),
            retry_window_seconds=retry_window_seconds,
        )
        return PermanentSkip(SKIP_EXPIRED)
    return Proceed()

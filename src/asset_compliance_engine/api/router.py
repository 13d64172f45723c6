"""API router for asset-compliance-engine.

Registered in main.py under the /api/v1 prefix. Routes are thin; the
pipeline lives in core/services.py.

Endpoints:
- POST /events  : push delivery of one change-feed event
- GET  /health  : startup state and OPA reachability

Delivery contract: any 2xx acknowledges the event, 503 asks the platform to
redeliver it.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from asset_compliance_engine.api.schemas import (
    EventProcessedResponse,
    HealthResponse,
    PushEnvelope,
    RetryResponse,
)
from asset_compliance_engine.core.interfaces import IOPAClient
from asset_compliance_engine.core.services import ComplianceMonitorService
from asset_compliance_engine.errors import TransientError
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["compliance"])


# ---------------------------------------------------------------------------
# Dependency factories: read the components wired at startup
# ---------------------------------------------------------------------------


def get_compliance_monitor_service(request: Request) -> ComplianceMonitorService:
    """Return the pipeline built by the lifespan handler."""
    return request.app.state.compliance_service


def get_opa_client(request: Request) -> IOPAClient:
    """Return the shared OPA client."""
    return request.app.state.opa_client


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/events",
    response_model=EventProcessedResponse,
    responses={503: {"model": RetryResponse}},
)
async def receive_event(
    request: Request,
    service: Annotated[ComplianceMonitorService, Depends(get_compliance_monitor_service)],
) -> EventProcessedResponse | JSONResponse:
    """Evaluate the rule against one delivered asset change.

    An envelope that cannot be parsed is acknowledged and dropped: no
    redelivery would make it readable.

    Args:
        request: Raw request carrying a PushEnvelope body.
        service: Injected ComplianceMonitorService.

    Returns:
        200 with the outcome, or 503 when the event must be redelivered.
    """
    try:
        envelope = PushEnvelope.model_validate_json(await request.body())
    except ValidationError as exc:
        logger.error("Malformed push envelope, event dropped", error=str(exc))
        return EventProcessedResponse(status="skipped", message_id="", reason="malformed_envelope")

    message = envelope.message
    try:
        result = await service.handle(
            payload=message.data,
            message_id=message.message_id,
            event_timestamp=message.publish_time,
        )
    except TransientError as exc:
        logger.warning(
            "Transient failure, asking for redelivery",
            message_id=message.message_id,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        return JSONResponse(
            status_code=503,
            content=RetryResponse(message_id=message.message_id, error=exc.message).model_dump(),
        )

    return EventProcessedResponse(
        status=result.status,
        message_id=message.message_id,
        reason=result.reason,
        compliant=result.compliance_status.compliant if result.compliance_status else None,
        violations_count=result.violations_count,
    )


@router.get("/health", response_model=HealthResponse, responses={503: {"model": HealthResponse}})
async def health(
    service: Annotated[ComplianceMonitorService, Depends(get_compliance_monitor_service)],
    opa_client: Annotated[IOPAClient, Depends(get_opa_client)],
) -> HealthResponse | JSONResponse:
    """Report startup state and OPA reachability.

    Returns:
        200 when setup succeeded and OPA answers, 503 otherwise.
    """
    opa_reachable = await opa_client.health_check()
    healthy = opa_reachable and not service.init_failed
    report = HealthResponse(
        status="ok" if healthy else "degraded",
        init_failed=service.init_failed,
        opa_reachable=opa_reachable,
    )
    if not healthy:
        return JSONResponse(status_code=503, content=report.model_dump())
    return report

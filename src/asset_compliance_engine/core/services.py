"""ComplianceMonitorService: the per-event compliance pipeline.

RetryGate -> DocumentEnricher (-> HierarchyResolver) -> PolicyEvaluationAdapter
-> ViolationExtractor -> ComplianceDecision -> EvidencePublisher

Outcomes:
- processed: every evidence record was acknowledged
- skipped: permanent problem, the event is acknowledged and dropped
- TransientError raised: the caller answers so that the event is redelivered

The service holds no per-event state. It contains no framework code; the
push route in api/router.py maps outcomes to HTTP status codes.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

import structlog

from asset_compliance_engine.core.decision import decide
from asset_compliance_engine.core.enricher import DocumentEnricher
from asset_compliance_engine.core.evaluation import PolicyEvaluationAdapter
from asset_compliance_engine.core.extractor import ViolationExtractor
from asset_compliance_engine.core.interfaces import IEvidencePublisher
from asset_compliance_engine.core.models import ComplianceStatus, RuleIdentity, Violation
from asset_compliance_engine.core.retry_gate import (
    PermanentSkip,
    Proceed,
    RetryableFailure,
    admit,
)
from asset_compliance_engine.errors import PermanentError, TransientError
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class InvocationResult:
    """What happened to one delivered event."""

    status: Literal["processed", "skipped"]
    reason: str | None = None
    compliance_status: ComplianceStatus | None = None
    violations_count: int = 0


class ComplianceMonitorService:
    """Evaluate one rule against every delivered asset change.

    Args:
        rule: Identity of the evaluated rule.
        enricher: Builds the enriched feed message.
        evaluator: Runs the rule in OPA.
        extractor: Decodes OPA answers into violations.
        publisher: Publishes evidence and awaits acknowledgments.
        retry_timeout_seconds: Redelivery window.
        invocation_timeout_seconds: Wall-clock budget of one invocation.
        init_failed: Whether one-time setup failed.
    """

    def __init__(
        self,
        rule: RuleIdentity,
        enricher: DocumentEnricher,
        evaluator: PolicyEvaluationAdapter,
        extractor: ViolationExtractor,
        publisher: IEvidencePublisher,
        retry_timeout_seconds: float = 600,
        invocation_timeout_seconds: float = 60,
        init_failed: bool = False,
    ) -> None:
        self._rule = rule
        self._enricher = enricher
        self._evaluator = evaluator
        self._extractor = extractor
        self._publisher = publisher
        self._retry_timeout_seconds = retry_timeout_seconds
        self._invocation_timeout_seconds = invocation_timeout_seconds
        self.init_failed = init_failed

    async def handle(
        self,
        payload: bytes,
        message_id: str,
        event_timestamp: datetime | None,
        now: datetime | None = None,
    ) -> InvocationResult:
        """Process one delivered event.

        Args:
            payload: Raw asset change event bytes.
            message_id: Delivery identifier, for logging only.
            event_timestamp: First publication time of the event.
            now: Current time override, used by tests.

        Returns:
            The invocation result.

        Raises:
            TransientError: When the event must be redelivered.
        """
        with structlog.contextvars.bound_contextvars(message_id=message_id, rule_name=self._rule.rule_name):
            return await self._handle(payload, message_id, event_timestamp, now)

    async def _handle(
        self,
        payload: bytes,
        message_id: str,
        event_timestamp: datetime | None,
        now: datetime | None,
    ) -> InvocationResult:
        match admit(message_id, self.init_failed, self._retry_timeout_seconds, event_timestamp, now):
            case PermanentSkip(reason=reason):
                return InvocationResult(status="skipped", reason=reason)
            case RetryableFailure(error=error):
                raise error
            case Proceed():
                pass

        try:
            async with asyncio.timeout(self._invocation_timeout_seconds):
                status, violations = await self._run(payload)
        except PermanentError as exc:
            logger.error(
                "Permanent failure, event dropped",
                error_type=type(exc).__name__,
                error=exc.message,
            )
            return InvocationResult(status="skipped", reason=type(exc).__name__)
        except TimeoutError as exc:
            raise TransientError(
                f"Invocation exceeded {self._invocation_timeout_seconds}s"
            ) from exc

        return InvocationResult(
            status="processed",
            compliance_status=status,
            violations_count=len(violations),
        )

    async def _run(self, payload: bytes) -> tuple[ComplianceStatus, list[Violation]]:
        feed_message = await self._enricher.enrich_payload(payload)

        violations: list[Violation] = []
        if not feed_message.deleted:
            result = await self._evaluator.evaluate(feed_message.asset)
            violations = self._extractor.extract(result, feed_message)

        status = decide(violations, feed_message.deleted, feed_message, self._rule)

        for index, violation in enumerate(violations):
            logger.info(
                "NOT_COMPLIANT",
                asset_name=status.asset_name,
                asset_inventory_origin=status.asset_inventory_origin,
                asset_inventory_timestamp=status.asset_inventory_timestamp.isoformat(),
                violation_num=index,
                constraint=violation.constraint_config.metadata.name,
                message=violation.non_compliance.message,
            )

        await self._publisher.publish(status, violations)

        if status.compliant:
            logger.info(
                "DELETED" if status.deleted else "COMPLIANT",
                compliance_status=status.model_dump(mode="json", by_alias=True),
                assets_document=[feed_message.asset.model_dump(mode="json", by_alias=True)],
            )
        return status, violations

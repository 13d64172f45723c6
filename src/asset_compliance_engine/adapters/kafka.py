"""Evidence publishing to Kafka.

Two durable channels:
- status topic     : one ComplianceStatus per invocation, always
- violation topic  : zero or more Violation records per invocation

Every send blocks until the broker acknowledges it (acks=all). The
invocation only succeeds once every record is acknowledged; an
unacknowledged send fails the invocation so the event is redelivered.
Consumers deduplicate on (assetName, assetInventoryTimestamp, ruleName,
ruleDeploymentTimestamp), so redelivery and cross-record ordering are safe.
"""

import asyncio
from typing import Any

from aiokafka import AIOKafkaProducer
from pydantic import BaseModel
from pydantic_core import PydanticSerializationError

from asset_compliance_engine.core.interfaces import IEvidenceSink
from asset_compliance_engine.core.models import ComplianceStatus, Violation
from asset_compliance_engine.errors import EvidencePublishError, EvidenceSerializationError
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)

# Default bootstrap servers (overridden by settings)
_DEFAULT_BOOTSTRAP_SERVERS = "localhost:9092"


class KafkaEvidenceProducer:
    """Thin aiokafka producer wrapper with idempotent, fully acknowledged sends.

    Args:
        bootstrap_servers: Comma-separated Kafka bootstrap server addresses.
    """

    def __init__(self, bootstrap_servers: str = _DEFAULT_BOOTSTRAP_SERVERS) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._producer: AIOKafkaProducer | None = None

    async def start(self) -> None:
        """Create and start the underlying producer.

        Must be called before send_and_wait. Called from the lifespan
        startup handler in main.py.
        """
        producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            acks="all",
            enable_idempotence=True,
        )
        await producer.start()
        self._producer = producer
        logger.info("Evidence producer started", bootstrap_servers=self._bootstrap_servers)

    async def stop(self) -> None:
        """Flush and close the producer."""
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
            logger.info("Evidence producer stopped")

    async def send_and_wait(self, topic: str, key: bytes, value: bytes) -> Any:
        """Send one record and wait for the broker acknowledgment.

        Raises:
            EvidencePublishError: If the producer was never started.
            KafkaError: If the broker does not acknowledge the record.
        """
        if self._producer is None:
            raise EvidencePublishError("Evidence producer not started")
        return await self._producer.send_and_wait(topic, value=value, key=key)


def serialize_record(record: BaseModel) -> bytes:
    """Render an evidence record as camelCase JSON bytes.

    Raises:
        EvidenceSerializationError: If the record cannot be serialized.
    """
    try:
        return record.model_dump_json(by_alias=True).encode("utf-8")
    except (PydanticSerializationError, TypeError, ValueError) as exc:
        raise EvidenceSerializationError(
            f"Cannot serialize {type(record).__name__}: {exc}"
        ) from exc


class EvidencePublisher:
    """Publish the evidence of one invocation and wait for every acknowledgment.

    Args:
        sink: Acknowledging channel producer.
        status_topic: Topic receiving compliance status records.
        violation_topic: Topic receiving violation records.
    """

    def __init__(self, sink: IEvidenceSink, status_topic: str, violation_topic: str) -> None:
        self._sink = sink
        self._status_topic = status_topic
        self._violation_topic = violation_topic

    async def publish(self, status: ComplianceStatus, violations: list[Violation]) -> None:
        """Publish N violations concurrently, then the status record.

        Everything is serialized before the first send so that a permanent
        serialization failure never leaves a partial set of evidence behind.

        Args:
            status: The compliance status of the invocation.
            violations: The violations of the invocation.

        Raises:
            EvidenceSerializationError: If any record cannot be serialized.
            EvidencePublishError: If any send is not acknowledged.
        """
        key = status.asset_name.encode("utf-8")
        status_payload = serialize_record(status)
        violation_payloads = [serialize_record(violation) for violation in violations]

        if violation_payloads:
            try:
                async with asyncio.TaskGroup() as group:
                    for payload in violation_payloads:
                        group.create_task(self._send(self._violation_topic, key, payload))
            except ExceptionGroup as failures:
                raise EvidencePublishError(
                    f"{len(failures.exceptions)} violation record(s) not acknowledged: "
                    f"{failures.exceptions[0]}"
                ) from failures

        try:
            await self._send(self._status_topic, key, status_payload)
        except Exception as exc:
            raise EvidencePublishError(f"Compliance status not acknowledged: {exc}") from exc

        logger.debug(
            "Evidence published",
            asset_name=status.asset_name,
            compliant=status.compliant,
            violations_count=len(violation_payloads),
        )

    async def _send(self, topic: str, key: bytes, payload: bytes) -> None:
        try:
            await self._sink.send_and_wait(topic, key, payload)
        except Exception as exc:
            logger.error("Evidence record not acknowledged", topic=topic, error=str(exc))
            raise

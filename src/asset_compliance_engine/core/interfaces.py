"""Abstract interfaces (Protocol classes) for the compliance engine.

Defines the contracts between the pipeline and the adapter layer using
typing.Protocol. Core components depend on these protocols, never on
concrete adapters, so tests substitute fakes.

Protocols defined:
- IHierarchyCache
- IDirectoryLookup
- IOPAClient
- IEvidenceSink
- IEvidencePublisher
"""

from typing import Any, Protocol

from asset_compliance_engine.core.models import ComplianceStatus, RuleEvaluationResult, Violation


class IHierarchyCache(Protocol):
    """Read-only view of the externally populated hierarchy cache."""

    async def lookup(self, key: str) -> tuple[dict[str, Any] | None, bool]:
        """Read one cached asset document.

        Args:
            key: Normalized document key.

        Returns:
            (document, found). document is None when found is False.

        Raises:
            Exception: Any transport error. Callers retry.
        """
        ...


class IDirectoryLookup(Protocol):
    """Live organization / folder / project lookup, used as a fallback only."""

    async def get_display_name(self, ancestor_type: str, ancestor_id: str) -> str:
        """Fetch the display name of one ancestor.

        Args:
            ancestor_type: organizations, folders or projects.
            ancestor_id: The identifier part after the type prefix.

        Returns:
            The human-readable name.

        Raises:
            Exception: Any lookup failure. Callers degrade to "unknown".
        """
        ...


class IOPAClient(Protocol):
    """Client contract for the OPA REST API."""

    async def delete_document(self, data_path: str) -> None:
        """Remove a data document. A missing document is not an error.

        Raises:
            WorkingDocumentError: On transport errors or unexpected status.
        """
        ...

    async def put_document(self, data_path: str, document: Any) -> None:
        """Create or replace a data document.

        Raises:
            WorkingDocumentError: On transport errors or unexpected status.
        """
        ...

    async def evaluate(self, package: str, query: str) -> RuleEvaluationResult:
        """Evaluate one rule of one package against the loaded data.

        Raises:
            PolicyEvaluationError: On transport errors, timeouts or unexpected status.
        """
        ...

    async def upload_policy(self, module_id: str, rego_content: str) -> None:
        """Upload one Rego module.

        Raises:
            PolicyUploadError: If OPA rejects the module.
        """
        ...

    async def health_check(self) -> bool:
        """Return True when OPA is reachable and healthy."""
        ...


class IEvidenceSink(Protocol):
    """Durable channel producer with per-record acknowledgment."""

    async def send_and_wait(self, topic: str, key: bytes, value: bytes) -> Any:
        """Send one record and block until the channel acknowledges it.

        Raises:
            Exception: Any unacknowledged send.
        """
        ...


class IEvidencePublisher(Protocol):
    """Publishes the evidence of one invocation."""

    async def publish(self, status: ComplianceStatus, violations: list[Violation]) -> None:
        """Publish every violation and the status, waiting for acknowledgments.

        Raises:
            EvidenceSerializationError: If a record cannot be serialized.
            EvidencePublishError: If any record is not acknowledged.
        """
        ...

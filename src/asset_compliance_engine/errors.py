"""Exception hierarchy for the compliance engine.

Two families only:
- PermanentError: redelivery cannot help. The invocation is acknowledged
  and the event dropped after logging.
- TransientError: the invocation fails so the push platform redelivers it
  within the retry window.

Hierarchy display-name lookups never raise; their failures degrade to
"unknown" display names.
"""


class ComplianceEngineError(Exception):
    """Base error for compliance engine failures.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize ComplianceEngineError.

        Args:
            message: Error description.
        """
        super().__init__(message)
        self.message = message


class PermanentError(ComplianceEngineError):
    """Failure that no retry can fix."""


class TransientError(ComplianceEngineError):
    """Failure worth a redelivery."""


class MalformedEventError(PermanentError):
    """Raised when an inbound payload does not deserialize to an asset change event."""


class RuleCatalogError(PermanentError):
    """Raised when the rule catalog cannot be loaded or pushed at startup."""


class EvidenceSerializationError(PermanentError):
    """Raised when a compliance status or violation cannot be serialized."""


class OPAClientError(TransientError):
    """Base error for OPA client failures.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from OPA (if available).
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize OPAClientError.

        Args:
            message: Error description.
            status_code: Optional HTTP status code.
        """
        super().__init__(message)
        self.status_code = status_code


class WorkingDocumentError(OPAClientError):
    """Raised when the OPA working document cannot be removed or written."""


class PolicyEvaluationError(OPAClientError):
    """Raised when OPA returns an error during evaluation or times out."""


class PolicyUploadError(OPAClientError):
    """Raised when OPA rejects a rule module or the constraints document."""


class EvidencePublishError(TransientError):
    """Raised when any evidence record is not acknowledged by its channel."""

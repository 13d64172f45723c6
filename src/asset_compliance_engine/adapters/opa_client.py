"""OPA (Open Policy Agent) REST API client.

Provides async HTTP communication with the OPA sidecar for:
- Uploading the Rego modules of the rule catalog at startup
- Writing and removing data documents (constraints, the asset working document)
- Evaluating the audit rule against the loaded data
- Health-checking OPA connectivity

OPA is deployed as a sidecar and exposes a REST API on :8181. The client
uses httpx and enforces a hard timeout on every data operation.

OPA REST API reference: https://www.openpolicyagent.org/docs/latest/rest-api/
"""

from typing import Any

import httpx

from asset_compliance_engine.core.models import RuleEvaluationResult, RuleExpression
from asset_compliance_engine.errors import (
    PolicyEvaluationError,
    PolicyUploadError,
    WorkingDocumentError,
)
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)

# Default OPA base URL, overridden by ASSET_COMPLIANCE_OPA_URL
_DEFAULT_OPA_URL = "http://localhost:8181"

# Default timeout for data writes and evaluations in milliseconds
_DEFAULT_EVAL_TIMEOUT_MS = 5000


class OPAClient:
    """Async client for the OPA REST API.

    Args:
        opa_url: OPA REST API base URL.
        eval_timeout_ms: Timeout for data operations in milliseconds.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        opa_url: str = _DEFAULT_OPA_URL,
        eval_timeout_ms: int = _DEFAULT_EVAL_TIMEOUT_MS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._opa_url = opa_url.rstrip("/")
        self._eval_timeout_ms = eval_timeout_ms
        self._eval_timeout_s = eval_timeout_ms / 1000.0
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    def _data_url(self, data_path: str) -> str:
        return f"{self._opa_url}/v1/data/{data_path.strip('/')}"

    async def delete_document(self, data_path: str) -> None:
        """Remove a data document. A 404 (nothing to remove) is a success.

        Args:
            data_path: Slash-separated OPA data path, e.g. assets.

        Raises:
            WorkingDocumentError: On transport errors or unexpected status.
        """
        url = self._data_url(data_path)
        try:
            async with self._client(self._eval_timeout_s) as client:
                response = await client.delete(url)
        except httpx.HTTPError as exc:
            raise WorkingDocumentError(message=f"OPA delete request error on {data_path}: {exc}")

        if response.status_code in (200, 204, 404):
            return
        raise WorkingDocumentError(
            message=f"OPA refused to delete {data_path} with status {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )

    async def put_document(self, data_path: str, document: Any) -> None:
        """Create or replace a data document.

        Args:
            data_path: Slash-separated OPA data path.
            document: JSON-serializable document.

        Raises:
            WorkingDocumentError: On transport errors or unexpected status.
        """
        url = self._data_url(data_path)
        try:
            async with self._client(self._eval_timeout_s) as client:
                response = await client.put(url, json=document)
        except httpx.HTTPError as exc:
            raise WorkingDocumentError(message=f"OPA write request error on {data_path}: {exc}")

        if response.status_code in (200, 204):
            return
        logger.error(
            "OPA rejected data document",
            data_path=data_path,
            status_code=response.status_code,
            body=response.text[:500],
        )
        raise WorkingDocumentError(
            message=f"OPA refused to write {data_path} with status {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
        )

    async def evaluate(self, package: str, query: str) -> RuleEvaluationResult:
        """Evaluate one rule of a package via the data API.

        Sends POST /v1/data/{package path}/{query}. OPA answers
        {"result": value}, or {} when the rule is undefined, which maps to
        a result without expressions.

        Args:
            package: Dotted Rego package, e.g. validator.gcp.lib.
            query: Rule name inside the package, e.g. audit.

        Returns:
            The opaque evaluation result.

        Raises:
            PolicyEvaluationError: If OPA returns an error or the request times out.
        """
        query_path = f"{package.replace('.', '/')}/{query}"
        url = self._data_url(query_path)
        text = f"data.{package}.{query}"

        try:
            async with self._client(self._eval_timeout_s) as client:
                response = await client.post(url, json={})
        except httpx.TimeoutException:
            logger.warning("OPA evaluation timed out", query=text, timeout_ms=self._eval_timeout_ms)
            raise PolicyEvaluationError(
                message=f"OPA evaluation timed out after {self._eval_timeout_ms}ms",
            )
        except httpx.HTTPError as exc:
            logger.error("OPA request failed", query=text, error=str(exc))
            raise PolicyEvaluationError(message=f"OPA request error: {exc}")

        if response.status_code != 200:
            logger.error(
                "OPA returned unexpected status",
                query=text,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise PolicyEvaluationError(
                message=f"OPA evaluation failed with status {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise PolicyEvaluationError(message=f"OPA returned a non JSON body: {exc}")

        if not isinstance(body, dict) or "result" not in body:
            return RuleEvaluationResult(expressions=[])
        return RuleEvaluationResult(expressions=[RuleExpression(text=text, value=body["result"])])

    async def upload_policy(self, module_id: str, rego_content: str) -> None:
        """Upload a Rego module to OPA.

        Sends PUT /v1/policies/{module_id} with the Rego source as body.
        OPA compiles and stores the module.

        Args:
            module_id: Module identifier, e.g. <rule>/audit.rego.
            rego_content: Full Rego source code.

        Raises:
            PolicyUploadError: If OPA rejects the module (syntax error, etc.).
        """
        url = f"{self._opa_url}/v1/policies/{module_id.strip('/')}"
        logger.info("Uploading Rego module to OPA", module_id=module_id, rego_content_length=len(rego_content))

        try:
            async with self._client(10.0) as client:
                response = await client.put(
                    url,
                    content=rego_content.encode("utf-8"),
                    headers={"Content-Type": "text/plain"},
                )
        except httpx.HTTPError as exc:
            raise PolicyUploadError(message=f"OPA upload request error: {exc}")

        if response.status_code in (200, 201):
            return
        logger.error(
            "OPA rejected Rego module",
            module_id=module_id,
            status_code=response.status_code,
            body=response.text[:500],
        )
        raise PolicyUploadError(
            message=f"OPA rejected module {module_id} with status {response.status_code}: {response.text[:300]}",
            status_code=response.status_code,
        )

    async def health_check(self) -> bool:
        """Check if OPA is reachable and healthy.

        Returns:
            True if OPA answers GET /health with 200, False otherwise.
        """
        url = f"{self._opa_url}/health"
        try:
            async with self._client(3.0) as client:
                response = await client.get(url)
        except httpx.HTTPError:
            logger.warning("OPA health check failed, OPA not reachable", opa_url=url)
            return False
        return response.status_code == 200

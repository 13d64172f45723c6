"""PolicyEvaluationAdapter: one asset onto OPA's collection-shaped contract.

The audit rule iterates data.<assets path>[_], the same contract used for
batch evaluation of many assets. A single-asset evaluation therefore writes
a one-element collection as the working document, then queries the rule.

The working document is removed before it is recreated, so a reused OPA
sidecar never evaluates an asset left behind by a previous invocation.
"""

import asyncio
import time

from asset_compliance_engine.core.interfaces import IOPAClient
from asset_compliance_engine.core.models import EnrichedAsset, RuleEvaluationResult
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)


class PolicyEvaluationAdapter:
    """Write the working document and run the fixed audit query.

    Args:
        opa_client: OPA REST client.
        assets_data_path: OPA data path of the working document.
        package: Rego package holding the query, e.g. validator.gcp.lib.
        query: Rule to evaluate, e.g. audit.
    """

    def __init__(
        self,
        opa_client: IOPAClient,
        assets_data_path: str = "assets",
        package: str = "validator.gcp.lib",
        query: str = "audit",
    ) -> None:
        self._opa = opa_client
        self._assets_data_path = assets_data_path.strip("/")
        self._package = package
        self._query = query
        # One working document per sidecar: evaluations must not interleave.
        self._working_document_lock = asyncio.Lock()

    def build_working_document(self, asset: EnrichedAsset) -> list[dict]:
        """Wrap one asset in the collection shape the rules iterate."""
        return [asset.model_dump(mode="json", by_alias=True)]

    async def evaluate(self, asset: EnrichedAsset) -> RuleEvaluationResult:
        """Evaluate the rule against a single asset.

        Args:
            asset: The enriched asset.

        Returns:
            The opaque OPA answer.

        Raises:
            WorkingDocumentError: If the working document cannot be replaced.
            PolicyEvaluationError: If OPA fails to evaluate.
        """
        document = self.build_working_document(asset)
        async with self._working_document_lock:
            start = time.perf_counter()
            await self._opa.delete_document(self._assets_data_path)
            await self._opa.put_document(self._assets_data_path, document)
            result = await self._opa.evaluate(self._package, self._query)
            latency_ms = (time.perf_counter() - start) * 1000

        logger.debug(
            "Asset evaluated",
            asset_name=asset.name,
            expressions=len(result.expressions),
            latency_ms=round(latency_ms, 2),
        )
        return result

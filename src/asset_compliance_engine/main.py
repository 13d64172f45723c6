"""Asset Compliance Engine service entry point.

Initializes the FastAPI application with:
- The rule catalog, pushed to the OPA sidecar once at startup
- OPA client for rule evaluation
- Kafka producer for the compliance status and violation evidence
- Redis hierarchy cache and the live resource-manager fallback

Run with::

    uvicorn asset_compliance_engine.main:create_app --factory

Startup failures other than invalid settings do not stop the process: the
engine marks itself init_failed and acknowledges and drops every event until
it is redeployed, so the push platform does not retry against a broken
instance.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from aiokafka.errors import KafkaError
from fastapi import FastAPI

from asset_compliance_engine.adapters.hierarchy_cache import RedisHierarchyCache
from asset_compliance_engine.adapters.kafka import EvidencePublisher, KafkaEvidenceProducer
from asset_compliance_engine.adapters.opa_client import OPAClient
from asset_compliance_engine.adapters.resource_manager import ResourceManagerClient
from asset_compliance_engine.adapters.rule_catalog import install_rule_catalog, load_rule_catalog
from asset_compliance_engine.api.router import router
from asset_compliance_engine.core.enricher import DocumentEnricher
from asset_compliance_engine.core.evaluation import PolicyEvaluationAdapter
from asset_compliance_engine.core.extractor import ViolationExtractor
from asset_compliance_engine.core.hierarchy import HierarchyResolver
from asset_compliance_engine.core.models import RuleIdentity
from asset_compliance_engine.core.services import ComplianceMonitorService
from asset_compliance_engine.errors import RuleCatalogError
from asset_compliance_engine.observability import configure_logging, get_logger
from asset_compliance_engine.settings import Settings

logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Service settings, read from the environment when omitted.

    Returns:
        The application, wired on startup by its lifespan handler.
    """
    settings = settings or Settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application startup and shutdown lifecycle.

        Args:
            app: The FastAPI application instance.

        Yields:
            None
        """
        init_failed = False
        rule_modules_source: dict[str, str] = {}

        # Startup: OPA client and rule catalog
        opa_client = OPAClient(opa_url=settings.opa_url, eval_timeout_ms=settings.opa_eval_timeout_ms)
        if not await opa_client.health_check():
            logger.warning(
                "OPA is not reachable at startup, rule installation will likely fail",
                opa_url=settings.opa_url,
            )
        try:
            catalog = load_rule_catalog(
                Path(settings.rule_catalog_path),
                modules_folder_name=settings.rego_modules_folder_name,
                constraints_folder_name=settings.constraints_folder_name,
            )
            await install_rule_catalog(opa_client, catalog, settings.rule_name)
            rule_modules_source = catalog.modules
        except RuleCatalogError as exc:
            logger.error("Rule catalog setup failed", error=exc.message)
            init_failed = True

        # Startup: Kafka evidence producer
        logger.info("Initializing evidence producer", bootstrap_servers=settings.kafka_bootstrap_servers)
        producer = KafkaEvidenceProducer(bootstrap_servers=settings.kafka_bootstrap_servers)
        try:
            await producer.start()
        except KafkaError as exc:
            logger.error("Evidence producer setup failed", error=str(exc))
            init_failed = True

        # Startup: hierarchy cache and live fallback
        cache = RedisHierarchyCache.from_url(
            settings.redis_url,
            timeout_s=settings.hierarchy_cache_read_timeout_ms / 1000.0,
        )
        directory = ResourceManagerClient(
            base_url=settings.resource_manager_url,
            token_url=settings.metadata_token_url,
        )

        rule = RuleIdentity(
            rule_name=settings.rule_name,
            rule_deployment_time=settings.rule_deployment_time,
            project_id=settings.project_id,
            environment=settings.environment,
        )
        resolver = HierarchyResolver(
            cache=cache,
            directory=directory,
            collection_id=settings.assets_collection_id,
            max_attempts=settings.hierarchy_cache_retries,
            backoff_ms=settings.hierarchy_cache_backoff_ms,
            read_timeout_ms=settings.hierarchy_cache_read_timeout_ms,
            total_timeout_s=settings.hierarchy_resolve_timeout_seconds,
        )
        service = ComplianceMonitorService(
            rule=rule,
            enricher=DocumentEnricher(
                resolver=resolver,
                owner_label_key=settings.owner_label_key_name,
                violation_resolver_label_key=settings.violation_resolver_label_key_name,
            ),
            evaluator=PolicyEvaluationAdapter(
                opa_client,
                assets_data_path=settings.opa_assets_data_path,
                package=settings.opa_package,
                query=settings.opa_query,
            ),
            extractor=ViolationExtractor(rule, rule_modules_source),
            publisher=EvidencePublisher(
                producer,
                status_topic=settings.status_topic,
                violation_topic=settings.violation_topic,
            ),
            retry_timeout_seconds=settings.retry_timeout_seconds,
            invocation_timeout_seconds=settings.invocation_timeout_seconds,
            init_failed=init_failed,
        )

        # Store shared clients on app state for dependency injection
        app.state.settings = settings
        app.state.opa_client = opa_client
        app.state.compliance_service = service

        logger.info(
            "Compliance engine startup complete",
            rule_name=settings.rule_name,
            init_failed=init_failed,
            opa_url=settings.opa_url,
        )

        yield

        # Shutdown
        logger.info("Shutting down compliance engine")
        await producer.stop()
        await cache.close()
        await directory.close()
        logger.info("Compliance engine shutdown complete")

    app = FastAPI(title=settings.service_name, version="0.1.0", lifespan=lifespan)
    app.include_router(router, prefix="/api/v1")
    return app

"""Adapters: external integrations for the compliance engine.

Contains:
- opa_client.py        : OPA REST API client
- rule_catalog.py      : Rego modules and constraints loaded from disk and pushed to OPA
- kafka.py             : KafkaEvidenceProducer and EvidencePublisher
- hierarchy_cache.py   : Redis reader for cached organization / folder / project documents
- resource_manager.py  : Live display-name lookup used when the cache has nothing
"""

__all__: list[str] = []

"""ViolationExtractor: untyped OPA answer to typed Violation records.

Each entry of the audit result is expected to look like::

    {
        "violation": {"msg": str, "details": {...}},
        "constraint_config": {
            "apiVersion": str,
            "kind": str,
            "metadata": {"name": str, "annotations": {...}},
            "spec": {"severity": str, "match": {...}, "parameters": {...}},
        },
    }

Decoding is total: every accessor returns None on a type mismatch and the
field is left unset. A malformed entry from one rule module never prevents
decoding well-formed entries from another.
"""

from typing import Any

from asset_compliance_engine.core.models import (
    ConstraintConfig,
    ConstraintMetadata,
    ConstraintSpec,
    EnrichedFeedMessage,
    FunctionConfig,
    NonCompliance,
    RuleEvaluationResult,
    RuleIdentity,
    Violation,
)
from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)


def as_str(value: Any) -> str | None:
    match value:
        case str():
            return value
    return None


def as_map(value: Any) -> dict[str, Any] | None:
    match value:
        case dict():
            return value
    return None


def as_list(value: Any) -> list[Any] | None:
    match value:
        case list():
            return value
    return None


def decode_non_compliance(value: Any) -> NonCompliance:
    """Decode the "violation" sub-map reported by a rule template."""
    violation = as_map(value) or {}
    return NonCompliance(
        message=as_str(violation.get("msg")),
        metadata=as_map(violation.get("details")),
    )


def decode_constraint_config(value: Any) -> ConstraintConfig:
    """Decode the "constraint_config" sub-map (the matching constraint.yaml)."""
    config = as_map(value) or {}
    metadata = as_map(config.get("metadata")) or {}
    spec = as_map(config.get("spec")) or {}
    return ConstraintConfig(
        api_version=as_str(config.get("apiVersion")),
        kind=as_str(config.get("kind")),
        metadata=ConstraintMetadata(
            name=as_str(metadata.get("name")),
            annotations=as_map(metadata.get("annotations")),
        ),
        spec=ConstraintSpec(
            severity=as_str(spec.get("severity")),
            match=as_map(spec.get("match")),
            parameters=as_map(spec.get("parameters")),
        ),
    )


def first_expression_entries(result: RuleEvaluationResult) -> list[Any]:
    """Return the first expression's value when it is a list, else an empty list.

    An absent expression and a non-list value both mean zero violations. The
    latter is logged since it points at a misbehaving rule module.
    """
    if not result.expressions:
        return []
    entries = as_list(result.expressions[0].value)
    if entries is None:
        logger.warning(
            "Audit result is not a list, treating as no violation",
            expression=result.expressions[0].text,
            value_type=type(result.expressions[0].value).__name__,
        )
        return []
    return entries


class ViolationExtractor:
    """Build one Violation per decodable audit result entry.

    Args:
        rule: Identity of the evaluated rule.
        rule_modules_source: Rego sources attached to every violation for troubleshooting.
    """

    def __init__(self, rule: RuleIdentity, rule_modules_source: dict[str, str]) -> None:
        self._rule = rule
        self._rule_modules_source = dict(rule_modules_source)

    def _function_config(self) -> FunctionConfig:
        return FunctionConfig(
            rule_name=self._rule.rule_name,
            project_context=self._rule.project_id,
            environment=self._rule.environment,
            rule_deployment_time=self._rule.rule_deployment_time,
        )

    def decode_entry(self, entry: Any, feed_message: EnrichedFeedMessage) -> Violation | None:
        """Decode one entry, or return None when it is not a map at all."""
        match entry:
            case dict():
                return Violation(
                    non_compliance=decode_non_compliance(entry.get("violation")),
                    function_config=self._function_config(),
                    constraint_config=decode_constraint_config(entry.get("constraint_config")),
                    feed_message=feed_message,
                    rule_modules_source=self._rule_modules_source,
                )
        return None

    def extract(
        self,
        result: RuleEvaluationResult,
        feed_message: EnrichedFeedMessage,
    ) -> list[Violation]:
        """Decode the whole OPA answer. Never raises.

        Args:
            result: The opaque OPA answer.
            feed_message: The enriched feed message that was evaluated.

        Returns:
            Violations in result order.
        """
        violations: list[Violation] = []
        for index, entry in enumerate(first_expression_entries(result)):
            violation = self.decode_entry(entry, feed_message)
            if violation is None:
                logger.warning(
                    "Skipping audit result entry that is not a map",
                    asset_name=feed_message.asset.name,
                    entry_index=index,
                    entry_type=type(entry).__name__,
                )
                continue
            violations.append(violation)
        return violations

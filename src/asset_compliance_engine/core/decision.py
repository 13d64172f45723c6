"""ComplianceDecision: violation count and deletion flag to a ComplianceStatus."""

from collections.abc import Sized

from asset_compliance_engine.core.models import ComplianceStatus, EnrichedFeedMessage, RuleIdentity


def decide(
    violations: Sized,
    deleted: bool,
    feed_message: EnrichedFeedMessage,
    rule: RuleIdentity,
) -> ComplianceStatus:
    """Build the compliance status of one invocation.

    A deleted asset is compliant whatever the evaluation said. Otherwise the
    asset is compliant exactly when no violation was found.

    Args:
        violations: Violations decoded for this invocation.
        deleted: Whether the feed reported the asset as deleted.
        feed_message: The enriched feed message (supplies the idempotency fields).
        rule: Identity of the evaluated rule.

    Returns:
        The ComplianceStatus record.
    """
    compliant = True if deleted else len(violations) == 0
    return ComplianceStatus(
        asset_name=feed_message.asset.name,
        asset_inventory_timestamp=feed_message.window.start_time,
        asset_inventory_origin=feed_message.origin,
        rule_name=rule.rule_name,
        rule_deployment_timestamp=rule.rule_deployment_time,
        compliant=compliant,
        deleted=deleted,
    )

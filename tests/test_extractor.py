"""Tests for ViolationExtractor and the total decoders behind it."""

from typing import Any

import pytest

from asset_compliance_engine.core.extractor import (
    ViolationExtractor,
    decode_constraint_config,
    decode_non_compliance,
    first_expression_entries,
)
from asset_compliance_engine.core.models import RuleEvaluationResult, RuleIdentity
from tests.conftest import RULE_DEPLOYMENT_TIME, RULE_NAME, make_audit_entry, make_feed_message, make_result


@pytest.fixture()
def extractor(rule: RuleIdentity) -> ViolationExtractor:
    return ViolationExtractor(rule, {"audit.rego": "package validator.gcp.lib"})


class TestFirstExpressionEntries:
    def test_absent_expression_means_no_entry(self) -> None:
        assert first_expression_entries(RuleEvaluationResult(expressions=[])) == []

    @pytest.mark.parametrize("value", [None, "violations", 3, {"violation": {}}])
    def test_non_list_value_means_no_entry(self, value: Any) -> None:
        assert first_expression_entries(make_result(value)) == []

    def test_only_first_expression_is_read(self) -> None:
        result = make_result([make_audit_entry()])
        result.expressions.append(make_result([1, 2, 3]).expressions[0])

        assert first_expression_entries(result) == [make_audit_entry()]


class TestDecoders:
    def test_decode_non_compliance(self) -> None:
        decoded = decode_non_compliance({"msg": "Bucket is public", "details": {"role": "allUsers"}})

        assert decoded.message == "Bucket is public"
        assert decoded.metadata == {"role": "allUsers"}

    def test_decode_non_compliance_tolerates_wrong_types(self) -> None:
        decoded = decode_non_compliance({"msg": ["a"], "details": "none"})

        assert decoded.message is None
        assert decoded.metadata is None

    def test_decode_constraint_config(self) -> None:
        config = decode_constraint_config(make_audit_entry()["constraint_config"])

        assert config.api_version == "constraints.gatekeeper.sh/v1alpha1"
        assert config.kind == "GCPStorageBucketPublicConstraintV1"
        assert config.metadata.name == "no_public_bucket"
        assert config.metadata.annotations == {"category": "data"}
        assert config.spec.severity == "high"
        assert config.spec.parameters == {}

    @pytest.mark.parametrize("value", [None, [], "x", {"metadata": "x", "spec": 1}])
    def test_decode_constraint_config_is_total(self, value: Any) -> None:
        config = decode_constraint_config(value)

        assert config.kind is None
        assert config.metadata.name is None
        assert config.spec.severity is None


class TestViolationExtractor:
    """Tests for ViolationExtractor.extract."""

    def test_one_violation_per_entry(self, extractor: ViolationExtractor) -> None:
        feed_message = make_feed_message()
        result = make_result([make_audit_entry("first", "c1"), make_audit_entry("second", "c2")])

        violations = extractor.extract(result, feed_message)

        assert [v.non_compliance.message for v in violations] == ["first", "second"]
        assert [v.constraint_config.metadata.name for v in violations] == ["c1", "c2"]

    def test_violation_carries_rule_and_feed_message(self, extractor: ViolationExtractor) -> None:
        feed_message = make_feed_message()

        violation = extractor.extract(make_result([make_audit_entry()]), feed_message)[0]

        assert violation.function_config.rule_name == RULE_NAME
        assert violation.function_config.rule_deployment_time == RULE_DEPLOYMENT_TIME
        assert violation.function_config.project_context == "ram-prd"
        assert violation.function_config.environment == "test"
        assert violation.feed_message == feed_message
        assert violation.rule_modules_source == {"audit.rego": "package validator.gcp.lib"}

    def test_non_map_entries_are_skipped(self, extractor: ViolationExtractor) -> None:
        """A malformed entry does not prevent decoding the well-formed ones."""
        result = make_result(["garbage", make_audit_entry("kept"), None, 12])

        violations = extractor.extract(result, make_feed_message())

        assert [v.non_compliance.message for v in violations] == ["kept"]

    def test_map_entry_with_missing_fields_is_kept(self, extractor: ViolationExtractor) -> None:
        violations = extractor.extract(make_result([{}]), make_feed_message())

        assert len(violations) == 1
        assert violations[0].non_compliance.message is None
        assert violations[0].constraint_config.metadata.name is None

    def test_absent_or_empty_results_give_no_violation(self, extractor: ViolationExtractor) -> None:
        feed_message = make_feed_message()

        assert extractor.extract(RuleEvaluationResult(expressions=[]), feed_message) == []
        assert extractor.extract(make_result([]), feed_message) == []
        assert extractor.extract(make_result({"not": "a list"}), feed_message) == []

    def test_violation_serializes_with_camel_case_keys(self, extractor: ViolationExtractor) -> None:
        violation = extractor.extract(make_result([make_audit_entry()]), make_feed_message())[0]

        document = violation.model_dump(mode="json", by_alias=True)

        assert set(document) == {
            "nonCompliance",
            "functionConfig",
            "constraintConfig",
            "feedMessage",
            "ruleModulesSource",
        }
        assert document["functionConfig"]["ruleName"] == RULE_NAME
        assert document["constraintConfig"]["apiVersion"] == "constraints.gatekeeper.sh/v1alpha1"

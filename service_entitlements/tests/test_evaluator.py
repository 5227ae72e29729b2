"""
Unit tests for the entitlement evaluator and flag snapshot parsing.
"""

import json

import pytest

from service_entitlements.app.access.catalog import TEACHER_FEATURES
from service_entitlements.app.access.evaluator import EntitlementEvaluator
from service_entitlements.app.access.models import (
    DecisionReason, EntitlementState, parse_allowed_sections, parse_flag,
)
from shared.test_helpers import TestDataFactory


FEATURES = ["dashboard", "payouts", "assessments", "unknown-feature"]
SECTIONS = [("payouts", "summary"), ("payouts", "withdraw"), ("assessments", "grading"), ("nope", "nope")]


def evaluator_for(**kwargs) -> EntitlementEvaluator:
    return EntitlementEvaluator(EntitlementState.from_flags(TestDataFactory.flags(**kwargs)))


class TestFlagParsing:
    """Test cases for raw flag decoding."""

    @pytest.mark.parametrize("raw", ["true", "TRUE", " True ", True, b"true"])
    def test_true_values(self, raw):
        assert parse_flag(raw) is True

    @pytest.mark.parametrize("raw", ["false", "1", "yes", "", None, 1, False, "truthy"])
    def test_everything_else_is_false(self, raw):
        assert parse_flag(raw) is False

    def test_allowed_sections_json(self):
        parsed = parse_allowed_sections(json.dumps({"payments": ["summary", "transactions"]}))
        assert parsed == {"payments": frozenset({"summary", "transactions"})}

    @pytest.mark.parametrize("raw", ["{not json", "[]", "42", "null", None, 3.5, "[" * 100000, "{\"a\": " * 100000])
    def test_malformed_allowed_sections_is_empty(self, raw):
        assert parse_allowed_sections(raw) == {}

    def test_bad_entries_dropped_individually(self):
        raw = json.dumps({
            "payouts": ["summary", 7, None],
            "assessments": "grading",
            "dashboard": {"stats": True},
            "my-courses": [],
        })
        parsed = parse_allowed_sections(raw)
        assert parsed == {"payouts": frozenset({"summary"}), "my-courses": frozenset()}

    def test_from_flags_defaults(self):
        state = EntitlementState.from_flags({})
        assert state.is_subscription_approved is False
        assert state.trial_active is False
        assert state.allowed_sections == {}

    def test_from_flags_never_raises_on_garbage(self):
        state = EntitlementState.from_flags({
            "isSubscriptionApproved": object(),
            "trialActive": ["true"],
            "allowedSections": b"\xff\xfe",
        })
        assert state == EntitlementState()

    def test_from_flags_non_mapping(self):
        assert EntitlementState.from_flags(None) == EntitlementState()
        assert EntitlementState.from_flags("true") == EntitlementState()


class TestEntitlementEvaluator:
    """Test cases for EntitlementEvaluator."""

    @pytest.mark.parametrize("sections", [None, {}, {"payouts": []}, {"payouts": ["summary"]}])
    def test_approved_subscription_allows_everything(self, sections):
        evaluator = evaluator_for(approved=True, trial=False, sections=sections)

        for feature_id in FEATURES:
            assert evaluator.is_feature_allowed(feature_id)
        for feature_id, section_id in SECTIONS:
            assert evaluator.is_section_allowed(feature_id, section_id)
        assert evaluator.explain_feature("payouts") == (True, DecisionReason.SUBSCRIPTION_APPROVED)

    def test_trial_allows_everything(self):
        evaluator = evaluator_for(approved=False, trial=True)

        for feature_id in FEATURES:
            assert evaluator.is_feature_allowed(feature_id)
        for feature_id, section_id in SECTIONS:
            assert evaluator.is_section_allowed(feature_id, section_id)
        assert evaluator.explain_section("payouts", "withdraw") == (True, DecisionReason.TRIAL_ACTIVE)

    def test_approval_checked_before_trial(self):
        evaluator = evaluator_for(approved=True, trial=True)
        assert evaluator.explain_feature("dashboard")[1] == DecisionReason.SUBSCRIPTION_APPROVED

    def test_allow_list_payments_scenario(self):
        evaluator = evaluator_for(approved=False, trial=False, sections={"payments": ["summary"]})

        assert evaluator.is_section_allowed("payments", "summary") is True
        assert evaluator.is_section_allowed("payments", "withdraw") is False
        assert evaluator.is_feature_allowed("assessments") is False
        assert evaluator.is_feature_allowed("payments") is True
        assert evaluator.explain_section("payments", "summary") == (True, DecisionReason.ALLOW_LIST)
        assert evaluator.explain_feature("assessments") == (False, DecisionReason.NOT_IN_ALLOW_LIST)

    def test_empty_allow_list_hides_feature(self):
        evaluator = evaluator_for(sections={"payouts": []})
        assert evaluator.is_feature_allowed("payouts") is False

    def test_default_state_denies(self):
        evaluator = EntitlementEvaluator()
        for feature_id in FEATURES:
            assert evaluator.is_feature_allowed(feature_id) is False
        for feature_id, section_id in SECTIONS:
            assert evaluator.is_section_allowed(feature_id, section_id) is False

    def test_malformed_allow_list_denies(self):
        state = EntitlementState.from_flags({"allowedSections": "{broken"})
        evaluator = EntitlementEvaluator(state)
        assert evaluator.is_section_allowed("payouts", "summary") is False

    def test_deeply_nested_allow_list_denies(self):
        state = EntitlementState.from_flags({"allowedSections": "[" * 100000})
        evaluator = EntitlementEvaluator(state)
        assert evaluator.is_feature_allowed("payouts") is False
        assert state.allowed_sections == {}

    def test_entitlement_map_follows_catalog_order(self):
        evaluator = evaluator_for(sections={"payouts": ["withdraw", "summary"], "ghost": ["x"]})
        features = evaluator.entitlement_map(TEACHER_FEATURES)

        assert list(features) == [f.feature_id for f in TEACHER_FEATURES]
        assert features["payouts"] == ["summary", "withdraw"]
        assert features["dashboard"] == []
        assert "ghost" not in features

    def test_entitlement_map_unrestricted(self):
        features = evaluator_for(trial=True).entitlement_map(TEACHER_FEATURES)
        for feature in TEACHER_FEATURES:
            assert features[feature.feature_id] == feature.section_ids

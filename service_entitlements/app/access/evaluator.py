"""
Entitlement evaluation for the Entitlements Service.

Decisions are evaluated in a fixed order and short-circuit:

1. an approved subscription sees everything;
2. an active trial sees everything;
3. otherwise the per-feature allow-list decides.

The evaluator holds an immutable ``EntitlementState`` and performs no I/O,
so every query is a pure function of that snapshot.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from .models import DecisionReason, EntitlementState, Feature


class EntitlementEvaluator:
    """Answers feature and section visibility for one flag snapshot."""

    def __init__(self, state: Optional[EntitlementState] = None):
        self.state = state or EntitlementState()

    def _unrestricted(self) -> Optional[DecisionReason]:
        if self.state.is_subscription_approved:
            return DecisionReason.SUBSCRIPTION_APPROVED
        if self.state.trial_active:
            return DecisionReason.TRIAL_ACTIVE
        return None

    def explain_feature(self, feature_id: str) -> Tuple[bool, DecisionReason]:
        """Decide feature visibility and report which rule decided it."""
        reason = self._unrestricted()
        if reason is not None:
            return True, reason
        if self.state.sections_for(feature_id):
            return True, DecisionReason.ALLOW_LIST
        return False, DecisionReason.NOT_IN_ALLOW_LIST

    def explain_section(self, feature_id: str, section_id: str) -> Tuple[bool, DecisionReason]:
        """Decide section visibility and report which rule decided it."""
        reason = self._unrestricted()
        if reason is not None:
            return True, reason
        if section_id in self.state.sections_for(feature_id):
            return True, DecisionReason.ALLOW_LIST
        return False, DecisionReason.NOT_IN_ALLOW_LIST

    def is_feature_allowed(self, feature_id: str) -> bool:
        return self.explain_feature(feature_id)[0]

    def is_section_allowed(self, feature_id: str, section_id: str) -> bool:
        return self.explain_section(feature_id, section_id)[0]

    def entitlement_map(self, catalog: Iterable[Feature]) -> Dict[str, List[str]]:
        """Allowed section ids for every catalog feature, in catalog order."""
        features: Dict[str, List[str]] = {}
        for feature in catalog:
            features[feature.feature_id] = [
                section_id for section_id in feature.section_ids
                if self.is_section_allowed(feature.feature_id, section_id)
            ]
        return features

"""
Entitlement data models for the Entitlements Service.
"""

import json
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field


# Keys of the local flag store, as written by the billing flow.
FLAG_SUBSCRIPTION_APPROVED = "isSubscriptionApproved"
FLAG_TRIAL_ACTIVE = "trialActive"
FLAG_ALLOWED_SECTIONS = "allowedSections"

FLAG_KEYS = (FLAG_SUBSCRIPTION_APPROVED, FLAG_TRIAL_ACTIVE, FLAG_ALLOWED_SECTIONS)


class DecisionReason(str, Enum):
    """Why an entitlement query was answered the way it was."""
    SUBSCRIPTION_APPROVED = "subscription_approved"
    TRIAL_ACTIVE = "trial_active"
    ALLOW_LIST = "allow_list"
    NOT_IN_ALLOW_LIST = "not_in_allow_list"


def parse_flag(raw: Any) -> bool:
    """Read a boolean flag; anything but an explicit true is false."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        return raw.strip().lower() == "true"
    return False


def parse_allowed_sections(raw: Any) -> Dict[str, FrozenSet[str]]:
    """Decode the allow-list; malformed input degrades to an empty mapping."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError):
            return {}
    if not isinstance(raw, Mapping):
        return {}

    allowed: Dict[str, FrozenSet[str]] = {}
    for feature_id, sections in raw.items():
        if not isinstance(feature_id, str) or not isinstance(sections, (list, tuple)):
            continue
        allowed[feature_id] = frozenset(s for s in sections if isinstance(s, str))
    return allowed


@dataclass(frozen=True)
class EntitlementState:
    """Snapshot of subscription, trial and allow-list flags for one user."""
    is_subscription_approved: bool = False
    trial_active: bool = False
    allowed_sections: Mapping[str, FrozenSet[str]] = field(default_factory=dict)

    @classmethod
    def from_flags(cls, flags: Optional[Mapping[str, Any]]) -> "EntitlementState":
        """Build a snapshot from raw flag-store values. Never raises."""
        if not isinstance(flags, Mapping):
            return cls()
        return cls(
            is_subscription_approved=parse_flag(flags.get(FLAG_SUBSCRIPTION_APPROVED)),
            trial_active=parse_flag(flags.get(FLAG_TRIAL_ACTIVE)),
            allowed_sections=parse_allowed_sections(flags.get(FLAG_ALLOWED_SECTIONS)),
        )

    def sections_for(self, feature_id: str) -> FrozenSet[str]:
        """Allowed sections for a feature; unknown features have none."""
        return self.allowed_sections.get(feature_id, frozenset())


@dataclass(frozen=True)
class FeatureSection:
    """A gated block within a feature page."""
    section_id: str
    label_en: str
    label_ar: str


@dataclass(frozen=True)
class Feature:
    """A dashboard feature with its URL paths and sections."""
    feature_id: str
    label_en: str
    label_ar: str
    paths: Tuple[str, ...]
    sections: Tuple[FeatureSection, ...]

    @property
    def section_ids(self) -> List[str]:
        return [s.section_id for s in self.sections]


class EntitlementCheckRequest(BaseModel):
    """Request model for a feature or section check."""
    user_id: str = Field(..., description="User ID")
    feature_id: str = Field(..., description="Feature ID")
    section_id: Optional[str] = Field(None, description="Section ID; omit to check the feature")
    flags: Optional[Dict[str, Any]] = Field(None, description="Flag snapshot; read from the flag store when omitted")


class EntitlementCheckResponse(BaseModel):
    """Response model for a feature or section check."""
    allowed: bool = Field(..., description="Whether the feature/section is visible")
    feature_id: str
    section_id: Optional[str] = None
    reason: DecisionReason


class EntitlementMapRequest(BaseModel):
    """Request model for the full catalog entitlement map."""
    user_id: str = Field(..., description="User ID")
    flags: Optional[Dict[str, Any]] = Field(None, description="Flag snapshot; read from the flag store when omitted")


class EntitlementMapResponse(BaseModel):
    """Allowed sections per catalog feature."""
    features: Dict[str, List[str]]


class CatalogSection(BaseModel):
    id: str
    label_en: str
    label_ar: str


class CatalogFeature(BaseModel):
    id: str
    label_en: str
    label_ar: str
    paths: List[str]
    sections: List[CatalogSection]

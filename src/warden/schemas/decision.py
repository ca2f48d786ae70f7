"""Engine decision output models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class DecisionBehavior(StrEnum):
    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class DecisionSource(StrEnum):
    """Which pipeline stage produced the decision."""

    RULE = "rule"
    OVERRIDE = "override"
    RATE_LIMIT = "rate_limit"
    TRIVIAL = "trivial"
    DEFAULT = "default"
    CONFIRMATION = "confirmation"
    INVALID = "invalid"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


MEDIUM_RISK_MIN = 40
HIGH_RISK_MIN = 70

_RECOMMENDATIONS: dict[RiskLevel, list[str]] = {
    RiskLevel.LOW: ["Operation is generally safe."],
    RiskLevel.MEDIUM: ["Verify the operation parameters."],
    RiskLevel.HIGH: [
        "Review carefully before approving.",
        "Consider taking a backup first.",
    ],
}


def level_for_score(score: int) -> RiskLevel:
    if score >= HIGH_RISK_MIN:
        return RiskLevel.HIGH
    if score >= MEDIUM_RISK_MIN:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class RiskAssessment(BaseModel):
    """Heuristic risk of one operation. Advisory only."""

    score: int = Field(..., ge=0, le=100)
    level: RiskLevel
    factors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @classmethod
    def from_score(cls, score: int, factors: list[str] | None = None) -> RiskAssessment:
        """Clamp *score* to 0-100 and derive level and recommendations."""
        clamped = max(0, min(100, score))
        level = level_for_score(clamped)
        return cls(
            score=clamped,
            level=level,
            factors=list(factors or []),
            recommendations=list(_RECOMMENDATIONS[level]),
        )


class Decision(BaseModel):
    """The engine's verdict for a single operation request."""

    decision_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tool_name: str
    canonical_key: str
    behavior: DecisionBehavior
    reason: str = Field(default="", description="Human-readable explanation.")
    matched_pattern: str | None = Field(
        default=None,
        description="Which rule pattern fired, if any.",
    )
    automatic: bool = Field(
        default=True,
        description="False if resolved through interactive confirmation.",
    )
    source: DecisionSource
    temporary: bool = Field(
        default=False,
        description="True for one-off grants made through confirmation.",
    )
    updated_parameters: dict[str, Any] | None = Field(
        default=None,
        description="Parameters the operator approved in place of the requested ones.",
    )
    risk_assessment: RiskAssessment | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def allowed(self) -> bool:
        return self.behavior == DecisionBehavior.ALLOW

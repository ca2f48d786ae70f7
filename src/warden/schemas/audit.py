"""Pydantic models for audit entries, queries and responses."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from warden.schemas.decision import Decision, RiskAssessment


class AuditEntry(BaseModel):
    """One immutable record per terminal decision."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str
    tool_name: str
    canonical_key: str
    decision: Decision
    risk_assessment: RiskAssessment | None = None
    cache_hit: bool = False
    high_risk_allowed: bool = False

    def to_json_line(self) -> str:
        return self.model_dump_json() + "\n"


class AuditLogEntry(BaseModel):
    """Read-only view of an audit table row."""

    id: int
    decision_id: str
    session_id: str
    tool_name: str
    canonical_key: str
    behavior: str
    source: str
    reason: str
    matched_pattern: str | None
    automatic: bool
    temporary: bool
    risk_score: int | None
    risk_level: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditQuery(BaseModel):
    """Filters for querying audit rows."""

    session_id: str | None = None
    tool_name: str | None = None
    behavior: str | None = None
    source: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int = Field(default=50, le=500)
    offset: int = Field(default=0, ge=0)

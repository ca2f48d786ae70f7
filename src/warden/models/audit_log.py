"""Audit log ORM model. Every decision served over HTTP is persisted here."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from warden.models.base import Base


class AuditRecord(Base):
    __tablename__ = "warden_audit_log"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    decision_id: Mapped[str] = mapped_column(String(36), index=True)
    session_id: Mapped[str] = mapped_column(String(64), index=True)

    # What was requested
    tool_name: Mapped[str] = mapped_column(String(256), index=True)
    canonical_key: Mapped[str] = mapped_column(Text)
    parameters_snapshot: Mapped[dict] = mapped_column(JSON)

    # What was decided
    behavior: Mapped[str] = mapped_column(String(16), index=True)
    source: Mapped[str] = mapped_column(String(32))
    reason: Mapped[str] = mapped_column(Text, default="")
    matched_pattern: Mapped[str | None] = mapped_column(Text, nullable=True)
    automatic: Mapped[bool] = mapped_column(Boolean, default=True)
    temporary: Mapped[bool] = mapped_column(Boolean, default=False)

    # Risk
    risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    risk_level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    risk_factors: Mapped[list | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )

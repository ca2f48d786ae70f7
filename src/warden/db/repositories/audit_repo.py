"""Repository for audit log persistence and queries."""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from warden.models.audit_log import AuditRecord
from warden.schemas.audit import AuditLogEntry, AuditQuery
from warden.schemas.decision import Decision


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def log_decision(
        self,
        decision: Decision,
        session_id: str,
        parameters: dict[str, Any],
    ) -> None:
        """Persist an engine decision."""
        risk = decision.risk_assessment
        row = AuditRecord(
            decision_id=decision.decision_id,
            session_id=session_id,
            tool_name=decision.tool_name,
            canonical_key=decision.canonical_key,
            parameters_snapshot=parameters,
            behavior=decision.behavior.value,
            source=decision.source.value,
            reason=decision.reason,
            matched_pattern=decision.matched_pattern,
            automatic=decision.automatic,
            temporary=decision.temporary,
            risk_score=risk.score if risk else None,
            risk_level=risk.level.value if risk else None,
            risk_factors=risk.factors if risk else None,
        )
        self._session.add(row)
        await self._session.commit()

    async def query(self, filters: AuditQuery) -> list[AuditLogEntry]:
        """Query audit rows with filters, newest first."""
        stmt = select(AuditRecord).order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())

        if filters.session_id:
            stmt = stmt.where(AuditRecord.session_id == filters.session_id)
        if filters.tool_name:
            stmt = stmt.where(AuditRecord.tool_name == filters.tool_name)
        if filters.behavior:
            stmt = stmt.where(AuditRecord.behavior == filters.behavior)
        if filters.source:
            stmt = stmt.where(AuditRecord.source == filters.source)
        if filters.since:
            stmt = stmt.where(AuditRecord.created_at >= filters.since)
        if filters.until:
            stmt = stmt.where(AuditRecord.created_at <= filters.until)

        stmt = stmt.offset(filters.offset).limit(filters.limit)
        result = await self._session.execute(stmt)
        rows = result.scalars().all()
        return [AuditLogEntry.model_validate(row) for row in rows]

    async def by_decision(self, decision_id: str) -> list[AuditLogEntry]:
        """All rows for one decision, oldest first."""
        stmt = (
            select(AuditRecord)
            .where(AuditRecord.decision_id == decision_id)
            .order_by(AuditRecord.id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [AuditLogEntry.model_validate(row) for row in rows]

    async def summary(self, since) -> dict[str, Any]:
        """Decision counts by behaviour and average risk since *since*."""
        total_q = select(func.count()).select_from(AuditRecord).where(AuditRecord.created_at >= since)
        total = (await self._session.execute(total_q)).scalar() or 0

        behavior_q = (
            select(AuditRecord.behavior, func.count())
            .where(AuditRecord.created_at >= since)
            .group_by(AuditRecord.behavior)
        )
        by_behavior = {row[0]: row[1] for row in (await self._session.execute(behavior_q)).all()}

        source_q = (
            select(AuditRecord.source, func.count())
            .where(AuditRecord.created_at >= since)
            .group_by(AuditRecord.source)
        )
        by_source = {row[0]: row[1] for row in (await self._session.execute(source_q)).all()}

        avg_q = select(func.avg(AuditRecord.risk_score)).where(AuditRecord.created_at >= since)
        avg_risk = (await self._session.execute(avg_q)).scalar()

        return {
            "total_decisions": total,
            "by_behavior": by_behavior,
            "by_source": by_source,
            "avg_risk_score": round(float(avg_risk), 1) if avg_risk is not None else 0.0,
        }

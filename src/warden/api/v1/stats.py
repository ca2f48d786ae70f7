"""Stats / summary endpoint for monitoring."""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query

from warden.db.repositories.audit_repo import AuditRepository
from warden.dependencies import get_audit_repo, get_engine, verify_api_key
from warden.engine.orchestrator import PolicyEngine

router = APIRouter(
    prefix="/v1/stats",
    tags=["stats"],
    dependencies=[Depends(verify_api_key)],
)


@router.get("/summary", summary="Get decision summary stats")
async def stats_summary(
    hours: int = Query(default=24, ge=1, le=720),
    audit_repo: AuditRepository = Depends(get_audit_repo),
    engine: PolicyEngine = Depends(get_engine),
):
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    summary = await audit_repo.summary(since)
    rules = engine.rules
    return {
        "hours": hours,
        **summary,
        "engine": engine.statistics(),
        "cache_entries": len(engine.cache),
        "rules": {
            "version": rules.version,
            "deny": len(rules.deny),
            "allow": len(rules.allow),
            "ask": len(rules.ask),
        },
    }

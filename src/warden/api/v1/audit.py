"""Read access to the persisted decision trail."""

from fastapi import APIRouter, Depends, HTTPException, status

from warden.db.repositories.audit_repo import AuditRepository
from warden.dependencies import get_audit_repo, verify_api_key
from warden.schemas.audit import AuditLogEntry, AuditQuery

router = APIRouter(
    prefix="/v1/audit",
    tags=["audit"],
    dependencies=[Depends(verify_api_key)],
)


@router.post(
    "/query",
    response_model=list[AuditLogEntry],
    summary="Filter audit rows by session, tool, behaviour, source or time",
)
async def query_decisions(
    query: AuditQuery,
    audit_repo: AuditRepository = Depends(get_audit_repo),
) -> list[AuditLogEntry]:
    return await audit_repo.query(query)


@router.get(
    "/decisions/{decision_id}",
    response_model=list[AuditLogEntry],
    summary="Every time a decision was served, cache hits included",
)
async def decision_history(
    decision_id: str,
    audit_repo: AuditRepository = Depends(get_audit_repo),
) -> list[AuditLogEntry]:
    rows = await audit_repo.by_decision(decision_id)
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Decision not found.")
    return rows

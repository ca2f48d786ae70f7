"""Evaluation and approval endpoints: the inbound interface of the engine."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from warden.db.repositories.audit_repo import AuditRepository
from warden.dependencies import (
    get_audit_repo,
    get_engine,
    get_pending_channel,
    require_operator,
    verify_api_key,
)
from warden.engine.confirmation import PendingApprovalChannel
from warden.engine.orchestrator import PolicyEngine
from warden.schemas.auth import ApiKeyInfo
from warden.schemas.confirmation import ApprovalResolution, PendingApproval
from warden.schemas.decision import Decision
from warden.schemas.operation import EvaluateRequest

logger = logging.getLogger("warden")

router = APIRouter(
    prefix="/v1/warden",
    tags=["warden"],
    dependencies=[Depends(verify_api_key)],
)


async def _evaluate_and_log(
    request: EvaluateRequest,
    engine: PolicyEngine,
    audit_repo: AuditRepository,
) -> Decision:
    session_id = request.session_id or engine.session_id
    decision = await engine.evaluate(request.tool_name, request.parameters, session_id)
    try:
        await audit_repo.log_decision(decision, session_id, request.parameters)
    except Exception:
        logger.exception("Failed to persist audit log for decision %s", decision.decision_id)
    return decision


@router.post(
    "/evaluate",
    response_model=Decision,
    status_code=status.HTTP_200_OK,
    summary="Evaluate a requested tool invocation",
    description=(
        "Runs the decision pipeline: rate limit -> cache -> critical overrides -> "
        "deny/allow/ask rules -> default deny."
    ),
)
async def evaluate(
    request: EvaluateRequest,
    engine: PolicyEngine = Depends(get_engine),
    audit_repo: AuditRepository = Depends(get_audit_repo),
) -> Decision:
    return await _evaluate_and_log(request, engine, audit_repo)


@router.post(
    "/evaluate-batch",
    response_model=list[Decision],
    status_code=status.HTTP_200_OK,
    summary="Evaluate several tool invocations in order",
)
async def evaluate_batch(
    requests: list[EvaluateRequest],
    engine: PolicyEngine = Depends(get_engine),
    audit_repo: AuditRepository = Depends(get_audit_repo),
) -> list[Decision]:
    return [await _evaluate_and_log(req, engine, audit_repo) for req in requests]


@router.get(
    "/pending",
    response_model=list[PendingApproval],
    summary="List requests waiting for operator approval",
)
async def list_pending(
    channel: PendingApprovalChannel = Depends(get_pending_channel),
) -> list[PendingApproval]:
    return channel.pending()


@router.post(
    "/approve/{approval_id}",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Resolve a pending approval",
)
async def resolve_approval(
    approval_id: str,
    resolution: ApprovalResolution,
    channel: PendingApprovalChannel = Depends(get_pending_channel),
    key_info: ApiKeyInfo | None = Depends(require_operator),
):
    reviewer = key_info.name if key_info and resolution.reviewer == "unknown" else resolution.reviewer
    if not channel.resolve(
        approval_id, resolution.choice, reviewer, resolution.updated_parameters
    ):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Approval not found or already resolved.",
        )
    return {"status": "resolved", "approval_id": approval_id, "choice": resolution.choice}

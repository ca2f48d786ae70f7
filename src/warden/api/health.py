"""Liveness and readiness probes. No authentication."""

from fastapi import APIRouter, Depends

from warden.dependencies import get_engine
from warden.engine.orchestrator import PolicyEngine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    return {"status": "healthy", "service": "warden"}


@router.get("/ready")
async def ready(engine: PolicyEngine = Depends(get_engine)):
    """Ready once a rule set is loaded. Fallback rules report ``degraded``."""
    rules = engine.rules
    return {
        "status": "degraded" if rules.fallback else "ready",
        "rules_version": rules.version,
        "confirmation": type(engine.confirmation).__name__,
    }

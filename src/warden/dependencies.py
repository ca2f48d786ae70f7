"""FastAPI dependency injection."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from warden.config import settings
from warden.db.repositories.audit_repo import AuditRepository
from warden.db.session import get_db
from warden.engine.confirmation import (
    ConfirmationChannel,
    ConsoleConfirmationChannel,
    NonInteractiveChannel,
    PendingApprovalChannel,
)
from warden.engine.orchestrator import PolicyEngine
from warden.schemas.auth import ApiKeyInfo, Role


@lru_cache
def get_confirmation_channel() -> ConfirmationChannel:
    """Instantiate the confirmation channel based on config."""
    if settings.confirmation_mode == "remote":
        return PendingApprovalChannel()
    if settings.confirmation_mode == "console":
        return ConsoleConfirmationChannel()
    return NonInteractiveChannel()


@lru_cache
def get_engine() -> PolicyEngine:
    """Build and return the singleton PolicyEngine."""
    return PolicyEngine.from_settings(settings, confirmation=get_confirmation_channel())


def get_pending_channel(
    engine: PolicyEngine = Depends(get_engine),
) -> PendingApprovalChannel:
    """The remote approval channel. 409 if the engine uses another channel."""
    if not isinstance(engine.confirmation, PendingApprovalChannel):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Remote approvals are disabled (set WARDEN_CONFIRMATION_MODE=remote).",
        )
    return engine.confirmation


async def get_audit_repo(session: AsyncSession = Depends(get_db)) -> AuditRepository:
    """Provide an AuditRepository bound to the current DB session."""
    return AuditRepository(session)


async def verify_api_key(x_api_key: str | None = Header(default=None)) -> ApiKeyInfo | None:
    """Validate the X-API-Key header and return parsed key info.

    If no API keys are configured (empty string), auth is disabled (dev mode).
    """
    configured = settings.parse_api_keys()
    if not configured:
        return None

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
        )

    key_info = configured.get(x_api_key)
    if key_info is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
        )
    return key_info


async def require_operator(
    key_info: ApiKeyInfo | None = Depends(verify_api_key),
) -> ApiKeyInfo | None:
    """Require the operator role. Raises 403 for agent keys."""
    if key_info is None:
        return None
    if key_info.role != Role.OPERATOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator role required.",
        )
    return key_info

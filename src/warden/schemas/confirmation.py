"""Models for interactive confirmation of ``ask`` decisions."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from warden.schemas.decision import RiskAssessment


class ConfirmationChoice(StrEnum):
    APPROVE_ONCE = "approve_once"
    DENY_ONCE = "deny_once"
    ALWAYS_ALLOW = "always_allow"
    NEVER_ALLOW = "never_allow"


class ConfirmationOutcome(BaseModel):
    """Answer from a confirmation channel.

    ``updated_parameters`` is set when the operator approved the call with
    edited parameters. It only accompanies a one-off approval.
    """

    approved: bool
    always_allow: bool = False
    never_allow: bool = False
    responder: str | None = None
    updated_parameters: dict[str, Any] | None = None

    @classmethod
    def from_choice(
        cls,
        choice: ConfirmationChoice,
        responder: str | None = None,
        updated_parameters: dict[str, Any] | None = None,
    ) -> ConfirmationOutcome:
        if updated_parameters is not None and choice != ConfirmationChoice.APPROVE_ONCE:
            raise ValueError("modified parameters can only be approved once")
        return cls(
            approved=choice in (ConfirmationChoice.APPROVE_ONCE, ConfirmationChoice.ALWAYS_ALLOW),
            always_allow=choice == ConfirmationChoice.ALWAYS_ALLOW,
            never_allow=choice == ConfirmationChoice.NEVER_ALLOW,
            responder=responder,
            updated_parameters=updated_parameters,
        )


class PendingApproval(BaseModel):
    """An ``ask`` waiting on a remote operator."""

    approval_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    request_id: str
    session_id: str
    tool_name: str
    parameters: dict[str, Any]
    risk_assessment: RiskAssessment
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ApprovalResolution(BaseModel):
    """Request body for POST /v1/warden/approve/{approval_id}."""

    choice: ConfirmationChoice
    reviewer: str = "unknown"
    updated_parameters: dict[str, Any] | None = Field(
        default=None,
        description="Approve with these parameters instead. Only valid with approve_once.",
    )

    @model_validator(mode="after")
    def modified_only_once(self) -> ApprovalResolution:
        if self.updated_parameters is not None and self.choice != ConfirmationChoice.APPROVE_ONCE:
            raise ValueError("updated_parameters requires choice approve_once")
        return self

"""Canonical schemas for operation requests flowing through the engine."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field, field_validator

from warden.engine.keys import canonical_tool_name


class OperationRequest(BaseModel):
    """A privileged operation an agent wants to perform."""

    request_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Unique ID for this request.",
    )
    tool_name: str = Field(
        ...,
        min_length=1,
        max_length=256,
        description="Capability being invoked, e.g. 'Bash', 'Write', 'WebFetch'.",
    )
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Named parameters of the invocation, in call order.",
    )
    session_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Agent session the request belongs to.",
    )

    @field_validator("tool_name")
    @classmethod
    def normalize_tool_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("tool_name must not be blank")
        return canonical_tool_name(v)


class EvaluateRequest(BaseModel):
    """Request body for POST /v1/warden/evaluate."""

    tool_name: str = Field(..., min_length=1, max_length=256)
    parameters: dict[str, Any] = Field(default_factory=dict)
    session_id: str | None = Field(
        default=None,
        description="Agent session ID. None = a fresh ID is generated.",
    )

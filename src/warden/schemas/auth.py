"""Authentication and RBAC schemas."""

from enum import StrEnum

from pydantic import BaseModel


class Role(StrEnum):
    OPERATOR = "operator"  # may resolve pending approvals and edit rules
    AGENT = "agent"  # may only submit requests


class ApiKeyInfo(BaseModel):
    """Parsed API key with caller name and role."""

    key: str
    name: str = "anonymous"
    role: Role = Role.OPERATOR

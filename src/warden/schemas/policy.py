"""Pydantic models for the JSON permissions document."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RuleTier(StrEnum):
    """Rule lists, in evaluation order."""

    DENY = "deny"
    ALLOW = "allow"
    ASK = "ask"


class PermissionRules(BaseModel):
    """Three ordered pattern lists. First match in deny, then allow, then ask wins."""

    allow: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)
    ask: list[str] = Field(default_factory=list)

    @field_validator("allow", "deny", "ask")
    @classmethod
    def drop_blank_patterns(cls, v: list[str]) -> list[str]:
        return [p.strip() for p in v if p and p.strip()]

    def tier(self, tier: RuleTier) -> list[str]:
        return getattr(self, tier.value)


class PermissionsDocument(BaseModel):
    """Complete permissions file.

    ``profiles`` holds named rule overlays that are appended to the base
    lists when activated. Any other top-level keys are kept so that writing
    the document back does not lose them.
    """

    model_config = ConfigDict(extra="allow")

    permissions: PermissionRules = Field(default_factory=PermissionRules)
    profiles: dict[str, PermissionRules] = Field(default_factory=dict)

    def effective_rules(self, active_profiles: list[str] | tuple[str, ...] = ()) -> PermissionRules:
        """Base lists followed by the lists of every active profile, in order."""
        merged = self.permissions.model_copy(deep=True)
        for name in active_profiles:
            profile = self.profiles.get(name)
            if profile is None:
                continue
            merged.deny.extend(profile.deny)
            merged.allow.extend(profile.allow)
            merged.ask.extend(profile.ask)
        return merged

"""Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

from warden.schemas.auth import ApiKeyInfo, Role


class Settings(BaseSettings):
    # Rule source
    permissions_path: str = "warden-permissions.json"
    active_profiles: list[str] = []
    watch_permissions: bool = True

    # Audit
    audit_log_path: str = "warden-audit.jsonl"
    database_url: str = "sqlite+aiosqlite:///./warden.db"

    # Decision cache
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 100

    # Per-tool rate limiting
    rate_window_seconds: float = 60.0
    rate_limits: dict[str, int] = {
        "Bash": 30,
        "Write": 50,
        "Edit": 100,
        "Read": 200,
        "Delete": 10,
    }
    default_rate_limit: int = 50

    # Tools allowed when no rule matches (pure reads)
    trivial_tools: list[str] = ["LS", "Grep", "Glob"]

    # Confirmation
    confirmation_mode: str = "none"  # "none" | "console" | "remote"
    confirmation_timeout_seconds: float = 120.0

    # Authentication
    api_keys: str = ""  # Comma-separated; empty = auth disabled (dev mode)

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"
    cors_origins: list[str] = ["*"]

    model_config = {"env_prefix": "WARDEN_", "env_file": ".env"}

    def parse_api_keys(self) -> dict[str, ApiKeyInfo]:
        """Parse api_keys string into a mapping of key -> ApiKeyInfo.

        Formats:
          - "key1,key2"                        -> bare keys, operator role
          - "key1:agent"                       -> key with role
          - "key1:ci-bot:agent,key2:alice:operator" -> key, name and role
        """
        raw = self.api_keys.strip()
        if not raw:
            return {}
        result: dict[str, ApiKeyInfo] = {}
        for entry in raw.split(","):
            entry = entry.strip()
            if not entry:
                continue
            parts = entry.split(":")
            if len(parts) == 3:
                key, name, role_str = parts
                result[key] = ApiKeyInfo(key=key, name=name, role=Role(role_str))
            elif len(parts) == 2:
                key, role_str = parts
                result[key] = ApiKeyInfo(key=key, role=Role(role_str))
            else:
                result[entry] = ApiKeyInfo(key=entry, role=Role.OPERATOR)
        return result


settings = Settings()

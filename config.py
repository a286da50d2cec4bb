from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""


def _required(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise MissingConfigurationError(f"{name} environment variable is not set.")
    return value


def _optional(env: Mapping[str, str], name: str) -> Optional[str]:
    value = (env.get(name) or "").strip()
    return value or None


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _optional(env, name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}.") from exc


def _snowflake(value: str, name: str) -> str:
    if not value.isdigit():
        raise ConfigurationError(f"{name} must be a numeric Discord ID, got {value!r}.")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings read from the environment (and `.env`, if present).

    Discord IDs are kept as strings to match how the repositories store
    requester IDs; the Discord layer converts them where it needs ints.
    """

    discord_token: str
    playfab_title_id: str
    primary_guild_id: str
    admin_role_id: str
    grant_guild_id: str
    db_path: str = "verify.db"
    database_url: Optional[str] = None
    always_role_ids: List[str] = field(default_factory=list)
    clan_role_id: Optional[str] = None
    log_channel_id: Optional[str] = None
    playfab_session_ttl_seconds: float = 50 * 60
    playfab_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        if env is None:
            load_dotenv()
            env = os.environ

        primary_guild_id = _snowflake(_required(env, "PRIMARY_GUILD_ID"), "PRIMARY_GUILD_ID")
        grant_guild_id = _optional(env, "GRANT_GUILD_ID") or primary_guild_id

        always_raw = _optional(env, "ALWAYS_ROLE_IDS") or ""
        always_role_ids = [
            _snowflake(part.strip(), "ALWAYS_ROLE_IDS")
            for part in always_raw.split(",")
            if part.strip()
        ]

        clan_role_id = _optional(env, "CLAN_ROLE_ID")
        log_channel_id = _optional(env, "LOG_CHANNEL_ID")

        return cls(
            discord_token=_required(env, "DISCORD_TOKEN"),
            playfab_title_id=_required(env, "PLAYFAB_TITLE_ID"),
            primary_guild_id=primary_guild_id,
            admin_role_id=_snowflake(_required(env, "ADMIN_ROLE_ID"), "ADMIN_ROLE_ID"),
            grant_guild_id=_snowflake(grant_guild_id, "GRANT_GUILD_ID"),
            db_path=_optional(env, "DB_PATH") or "verify.db",
            database_url=_optional(env, "DATABASE_URL"),
            always_role_ids=always_role_ids,
            clan_role_id=_snowflake(clan_role_id, "CLAN_ROLE_ID") if clan_role_id else None,
            log_channel_id=_snowflake(log_channel_id, "LOG_CHANNEL_ID") if log_channel_id else None,
            playfab_session_ttl_seconds=_number(env, "PLAYFAB_SESSION_TTL_MINUTES", 50) * 60,
            playfab_timeout_seconds=_number(env, "PLAYFAB_TIMEOUT_SECONDS", 10.0),
            log_level=(_optional(env, "LOG_LEVEL") or "INFO").upper(),
        )

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional

from domain.models import RoleKind, Team


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the Discord bot."""

    token: str
    guild_id: Optional[int] = None
    admin_role_ids: FrozenSet[int] = frozenset()
    badge_role_ids: Dict[RoleKind, int] = field(default_factory=dict)
    new_member_role_id: Optional[int] = None
    team_role_ids: Dict[Team, int] = field(default_factory=dict)
    excluded_users: FrozenSet[str] = frozenset()
    link_base_url: str = ""
    database_url: Optional[str] = None
    db_path: str = "moola.db"
    role_sync_interval_hours: float = 6.0
    role_sync_member_timeout: float = 5.0
    tie_winner: Team = Team.BERAS
    snapshot_dir: str = "temp"
    log_level: str = "INFO"


def _optional_int(environ: Mapping[str, str], key: str) -> Optional[int]:
    raw = environ.get(key, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer Discord ID, got {raw!r}") from None


def _id_list(environ: Mapping[str, str], key: str) -> list[str]:
    return [part.strip() for part in environ.get(key, "").split(",") if part.strip()]


def _positive_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    value = float(raw)
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value


def load_settings(environ: Mapping[str, str]) -> Settings:
    """
    Build `Settings` from environment variables.

    Role IDs are plain integers; `ADMIN_ROLE_IDS` and `EXCLUDED_USERS` are
    comma separated. Missing role IDs are allowed here and reported when the
    features that need them run.
    """

    token = environ.get("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("DISCORD_TOKEN environment variable is not set.")

    badge_keys = {
        RoleKind.WHITELIST: "WHITELIST_ROLE_ID",
        RoleKind.MOOLALIST: "MOOLALIST_ROLE_ID",
        RoleKind.FREE_MINT: "FREE_MINT_ROLE_ID",
    }
    badge_role_ids = {}
    for kind, key in badge_keys.items():
        role_id = _optional_int(environ, key)
        if role_id is not None:
            badge_role_ids[kind] = role_id

    team_role_ids = {}
    for team, key in ((Team.BULLAS, "BULLAS_ROLE_ID"), (Team.BERAS, "BERAS_ROLE_ID")):
        role_id = _optional_int(environ, key)
        if role_id is not None:
            team_role_ids[team] = role_id

    try:
        admin_role_ids = frozenset(int(part) for part in _id_list(environ, "ADMIN_ROLE_IDS"))
    except ValueError:
        raise ValueError("ADMIN_ROLE_IDS must be a comma separated list of integers") from None

    tie_raw = environ.get("TEAM_TIE_WINNER", Team.BERAS.value).strip().lower()
    try:
        tie_winner = Team(tie_raw)
    except ValueError:
        raise ValueError(f"TEAM_TIE_WINNER must be 'bullas' or 'beras', got {tie_raw!r}") from None

    return Settings(
        token=token,
        guild_id=_optional_int(environ, "GUILD_ID"),
        admin_role_ids=admin_role_ids,
        badge_role_ids=badge_role_ids,
        new_member_role_id=_optional_int(environ, "NEW_MEMBER_ROLE_ID"),
        team_role_ids=team_role_ids,
        excluded_users=frozenset(_id_list(environ, "EXCLUDED_USERS")),
        link_base_url=environ.get("LINK_BASE_URL", "").strip(),
        database_url=environ.get("DATABASE_URL", "").strip() or None,
        db_path=environ.get("DB_PATH", "moola.db"),
        role_sync_interval_hours=_positive_float(environ, "ROLE_SYNC_INTERVAL_HOURS", 6.0),
        role_sync_member_timeout=_positive_float(environ, "ROLE_SYNC_MEMBER_TIMEOUT", 5.0),
        tie_winner=tie_winner,
        snapshot_dir=environ.get("SNAPSHOT_DIR", "temp"),
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
    )

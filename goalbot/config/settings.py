# goalbot/config/settings.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./goalbot.db"


def _require(env: dict[str, str], key: str) -> str:
    v = env.get(key)
    if v is None or not v.strip():
        raise RuntimeError(f"Missing required environment variable: {key}")
    return v.strip()


def _to_int(value: str, key_name: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise RuntimeError(f"Invalid integer for {key_name}: {value!r}") from e


def _int_or_default(env: dict[str, str], key: str, default: int, *, minimum: int = 0) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    value = _to_int(raw, key)
    if value < minimum:
        raise RuntimeError(f"{key} must be >= {minimum}, got {value}")
    return value


def _parse_int_list(raw: str | None, key_name: str) -> list[int]:
    """
    Parses comma/space/newline separated ints.
    Accepts:
      "951258732"
      "951258732,123"
      "951258732 123"
      "[951258732, 123]"  (brackets ignored)
    """
    if not raw:
        return []

    cleaned = raw.strip().strip("[](){}").strip()
    if not cleaned:
        return []

    parts = [p for p in re.split(r"[,\s]+", cleaned) if p]

    out: list[int] = []
    for p in parts:
        p2 = p.strip().strip("'\"")
        if not p2:
            continue
        out.append(_to_int(p2, key_name))
    return out


@dataclass(frozen=True, slots=True)
class Settings:
    # --- required ---
    bot_token: str

    # --- optional ---
    database_url: str = DEFAULT_DATABASE_URL

    # --- security / admin ---
    root_admin_ids: tuple[int, ...] = ()

    # --- entitlements (empty = everyone) ---
    entitled_user_ids: tuple[int, ...] = ()

    # --- period sweep ---
    sweep_interval_minutes: int = 60
    sweep_concurrency: int = 4
    sweep_timeout_seconds: int = 300

    # --- leaderboard ---
    leaderboard_points_per_place: int = 10
    leaderboard_completion_bonus: int = 50
    leaderboard_limit: int = 10

    # --- environment ---
    environment: str = "production"  # production | development

    @property
    def is_dev(self) -> bool:
        return self.environment.lower() in {"dev", "development", "local"}

    @classmethod
    def load(cls, *, require_token: bool = True) -> "Settings":
        """
        Loads from process env (and .env if present).
        Fails fast for required fields and malformed numbers.
        Offline tools (the period CLI) pass require_token=False.
        """
        load_dotenv()
        env = os.environ

        bot_token = _require(env, "BOT_TOKEN") if require_token else (env.get("BOT_TOKEN") or "").strip()
        database_url = (env.get("DATABASE_URL") or DEFAULT_DATABASE_URL).strip()

        root_admin_ids = tuple(_parse_int_list(env.get("ROOT_ADMIN_IDS"), "ROOT_ADMIN_IDS"))
        entitled_user_ids = tuple(_parse_int_list(env.get("ENTITLED_USER_IDS"), "ENTITLED_USER_IDS"))

        environment = (env.get("ENVIRONMENT") or "production").strip() or "production"

        return cls(
            bot_token=bot_token,
            database_url=database_url,
            root_admin_ids=root_admin_ids,
            entitled_user_ids=entitled_user_ids,
            sweep_interval_minutes=_int_or_default(env, "SWEEP_INTERVAL_MINUTES", 60, minimum=1),
            sweep_concurrency=_int_or_default(env, "SWEEP_CONCURRENCY", 4, minimum=1),
            sweep_timeout_seconds=_int_or_default(env, "SWEEP_TIMEOUT_SECONDS", 300, minimum=1),
            leaderboard_points_per_place=_int_or_default(env, "LEADERBOARD_POINTS_PER_PLACE", 10),
            leaderboard_completion_bonus=_int_or_default(env, "LEADERBOARD_COMPLETION_BONUS", 50),
            leaderboard_limit=_int_or_default(env, "LEADERBOARD_LIMIT", 10, minimum=1),
            environment=environment,
        )

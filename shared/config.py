import os
from typing import Optional

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off"}


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return an environment setting with an optional default."""
    return os.getenv(name, default)


def get_required_setting(name: str) -> str:
    """Return a required environment setting or raise a ValueError."""
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def get_bool_setting(name: str, default: bool = False) -> bool:
    raw = get_setting(name)
    if raw is None:
        return default
    lowered = str(raw).strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    return default


def get_int_setting(name: str, default: int, minimum: int = 1) -> int:
    raw = str(get_setting(name) or "").strip()
    try:
        parsed = int(raw) if raw else default
    except ValueError:
        parsed = default
    return max(minimum, parsed)


def get_database_url() -> str:
    """
    Return the database URL for SQLAlchemy.
    Defaults to a local SQLite file for development if not provided.
    """
    return os.getenv("DATABASE_URL") or os.getenv("POSTGRES_CONNECTION_STRING") or "sqlite:///./data/app.db"


def notifications_enabled() -> bool:
    """Mention notifications go to the sink unless NOTIFICATIONS_ENABLED is falsy."""
    return get_bool_setting("NOTIFICATIONS_ENABLED", default=True)


def get_recent_activity_hours() -> int:
    return get_int_setting("MY_TASKS_RECENT_ACTIVITY_HOURS", 4)


def get_mentions_max_page_size() -> int:
    return get_int_setting("MENTIONS_MAX_PAGE_SIZE", 100)

"""
Runtime settings, read from the environment (and a .env file when present).
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_str(name: str, default: str | None = None) -> str | None:
    raw = os.environ.get(name, "").strip()
    return raw or default


PORT = _env_int("GRADE_PLANNER_PORT", 5000)
DEBUG = _env_bool("GRADE_PLANNER_DEBUG", False)
LOG_LEVEL = (_env_str("GRADE_PLANNER_LOG_LEVEL", "INFO") or "INFO").upper()
SEED_PATH = _env_str("GRADE_PLANNER_SEED_PATH")
DEFAULT_USER_ID = _env_str("GRADE_PLANNER_DEFAULT_USER", "local")
MAX_CONTENT_LENGTH = _env_int("MAX_CONTENT_LENGTH", 1024 * 1024)

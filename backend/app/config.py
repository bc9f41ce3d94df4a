"""Runtime settings, read once from the environment."""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DB_PATH = BASE_DIR / "tournament.db"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int_list(value: str) -> list[int]:
    result: list[int] = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        result.append(int(item))
    return result


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "")

# Web
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if origin.strip()
]
AUTO_SEED_ON_EMPTY = _parse_bool(os.getenv("AUTO_SEED_ON_EMPTY", "false"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Tournament defaults
DEFAULT_MATCH_DURATION_MINUTES = int(os.getenv("DEFAULT_MATCH_DURATION_MINUTES", "90"))
DEFAULT_COURT_IDS = _parse_int_list(os.getenv("DEFAULT_COURT_IDS", "1,2")) or [1]

# Schedule search bounds
SCHEDULER_MAX_ITERATIONS = int(os.getenv("SCHEDULER_MAX_ITERATIONS", "200000"))
SCHEDULER_TIME_LIMIT_SECONDS = float(os.getenv("SCHEDULER_TIME_LIMIT_SECONDS", "10"))

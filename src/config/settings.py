import json
import os

from dotenv import load_dotenv

from src.config.constants import ACTION_WEIGHTS, ActivityAction
from src.shared.utils import get_logger

logger = get_logger(__name__)


load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _load_action_weights() -> dict:
    """Default weight table, optionally overridden by a JSON object in the environment."""
    weights = dict(ACTION_WEIGHTS)
    raw = os.getenv("RECOMMENDATION_ACTION_WEIGHTS")
    if not raw:
        return weights

    try:
        overrides = json.loads(raw)
        for action, weight in overrides.items():
            weights[ActivityAction(action.upper())] = float(weight)
    except (ValueError, AttributeError) as e:
        logger.warning(f"Ignoring invalid RECOMMENDATION_ACTION_WEIGHTS: {e}")
        return dict(ACTION_WEIGHTS)

    return weights


class Settings:
    """Application configuration settings."""

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", None)
    DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
    DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))
    DB_COMMAND_TIMEOUT = int(os.getenv("DB_COMMAND_TIMEOUT", "60"))

    # Recommendation scheduling
    RECOMMENDATION_SCHEDULER_ENABLED = _env_bool(
        "RECOMMENDATION_SCHEDULER_ENABLED", "true"
    )
    SCHEDULER_TIMEZONE = os.getenv("SCHEDULER_TIMEZONE", "UTC")
    SIMILARITY_REBUILD_HOUR = int(os.getenv("SIMILARITY_REBUILD_HOUR", "2"))
    USER_SCORE_REBUILD_INTERVAL_HOURS = int(
        os.getenv("USER_SCORE_REBUILD_INTERVAL_HOURS", "6")
    )

    # Bulk user score rebuild throttling
    USER_SCORE_BATCH_SIZE = int(os.getenv("USER_SCORE_BATCH_SIZE", "100"))
    USER_SCORE_BATCH_PAUSE_SECONDS = float(
        os.getenv("USER_SCORE_BATCH_PAUSE_SECONDS", "1.0")
    )

    # Activity weight table
    ACTION_WEIGHTS = _load_action_weights()

    # Background jobs
    JOB_HISTORY_LIMIT = int(os.getenv("JOB_HISTORY_LIMIT", "100"))


settings = Settings()

"""Settings loaded from the environment (and an optional .env file)."""
import os
from pathlib import Path

from dotenv import load_dotenv

from wellness_path.db import DEFAULT_DB_PATH

load_dotenv()


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application settings."""

    DB_PATH: str = os.getenv("WELLNESS_DB_PATH", DEFAULT_DB_PATH)
    USER_ID: str = os.getenv("WELLNESS_USER", "local")
    CURRICULUM_PATH: str = os.getenv("WELLNESS_CURRICULUM", "")

    PHASE_DAYS: int = int(os.getenv("WELLNESS_PHASE_DAYS", "30"))
    PASSING_SCORE: int = int(os.getenv("WELLNESS_PASSING_SCORE", "70"))
    RETRY_HOURS: int = int(os.getenv("WELLNESS_RETRY_HOURS", "24"))
    IMMEDIATE_RETRY: bool = _flag(os.getenv("WELLNESS_IMMEDIATE_RETRY", "false"))

    LOG_LEVEL: str = os.getenv("WELLNESS_LOG_LEVEL", "WARNING").upper()

    @classmethod
    def validate(cls) -> list[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors = []

        if not cls.USER_ID:
            errors.append("WELLNESS_USER is empty")
        if cls.PHASE_DAYS < 1:
            errors.append("WELLNESS_PHASE_DAYS must be at least 1")
        if not 0 <= cls.PASSING_SCORE <= 100:
            errors.append("WELLNESS_PASSING_SCORE must be between 0 and 100")
        if cls.RETRY_HOURS < 0:
            errors.append("WELLNESS_RETRY_HOURS cannot be negative")
        if cls.CURRICULUM_PATH and not Path(cls.CURRICULUM_PATH).exists():
            errors.append(f"Curriculum file not found: {cls.CURRICULUM_PATH}")

        return errors


config = Config()

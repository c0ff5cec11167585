"""Environment-based configuration."""

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_AI_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_AI_MODEL = "MaaS_4.1"


def default_db_path() -> Path:
    """Default cache location: ~/.cache/budget-coach-mcp/budget_coach.db"""
    return Path.home() / ".cache" / "budget-coach-mcp" / "budget_coach.db"


@dataclass
class Settings:
    db_path: Path
    ai_url: str = DEFAULT_AI_URL
    ai_token: str | None = None
    ai_model: str = DEFAULT_AI_MODEL
    week_start: int = 0  # 0=Monday .. 6=Sunday
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from BUDGET_COACH_* environment variables.

        Raises:
            ValueError: If BUDGET_COACH_WEEK_START is not a weekday number.
        """
        db_path = os.environ.get("BUDGET_COACH_DB_PATH")
        week_start = int(os.environ.get("BUDGET_COACH_WEEK_START", "0"))
        if not 0 <= week_start <= 6:
            raise ValueError(
                "BUDGET_COACH_WEEK_START must be between 0 (Monday) and 6 (Sunday)"
            )
        return cls(
            db_path=Path(db_path) if db_path else default_db_path(),
            ai_url=os.environ.get("BUDGET_COACH_AI_URL", DEFAULT_AI_URL),
            ai_token=os.environ.get("BUDGET_COACH_AI_TOKEN") or None,
            ai_model=os.environ.get("BUDGET_COACH_AI_MODEL", DEFAULT_AI_MODEL),
            week_start=week_start,
            log_level=os.environ.get("BUDGET_COACH_LOG_LEVEL", "INFO").upper(),
        )

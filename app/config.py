"""
Application configuration. Loads from environment variables.
Secrets and sensitive config must never be hardcoded.
"""

import os

from dotenv import load_dotenv

load_dotenv()
from functools import lru_cache


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


class Settings:
    """Application settings loaded from environment."""

    # App
    app_name: str = "Cadence"
    debug: bool = False

    # Database (postgresql+psycopg for psycopg3; sqlite:// is accepted for local runs and tests)
    database_url: str = "postgresql+psycopg://localhost:5432/cadence_dev"
    db_connect_timeout: int = 10  # seconds

    # Security
    internal_job_token: str = ""  # Required for /internal/* and /api/* endpoints

    # Coordination lifecycle
    coordination_event_lookback_hours: int = 72  # unprocessed events older than this are ignored
    coordination_sweep_batch_limit: int = 500  # max pending triggers aged per sweep

    # Notification gate
    nudge_activity_window_minutes: int = 30  # recent engagement suppresses nudges
    nudge_dismissal_cooldown_hours: int = 24  # same rule+entity dismissed → wait
    nudge_quality_window_days: int = 14
    nudge_quality_min_samples: int = 10  # resolved+dismissed outcomes before dampening
    nudge_dismissal_rate_threshold: float = 0.45

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.debug = os.getenv("DEBUG", "false").lower() == "true"

        default_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
        default_url = (
            f"postgresql+psycopg://{default_user}:"
            f"{os.getenv('PGPASSWORD', '')}@"
            f"{os.getenv('PGHOST', 'localhost')}:"
            f"{os.getenv('PGPORT', '5432')}/"
            f"{os.getenv('PGDATABASE', 'cadence_dev')}"
        )
        raw_url = os.getenv("DATABASE_URL", default_url)
        # Ensure psycopg3 driver if URL uses generic postgresql://
        if raw_url.startswith("postgresql://") and not raw_url.startswith("postgresql+psycopg"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
        self.database_url = raw_url
        self.db_connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", str(self.db_connect_timeout)))

        self.internal_job_token = os.getenv("INTERNAL_JOB_TOKEN", "")

        self.coordination_event_lookback_hours = int(
            os.getenv(
                "COORDINATION_EVENT_LOOKBACK_HOURS",
                str(self.coordination_event_lookback_hours),
            )
        )
        self.coordination_sweep_batch_limit = int(
            os.getenv("COORDINATION_SWEEP_BATCH_LIMIT", str(self.coordination_sweep_batch_limit))
        )

        self.nudge_activity_window_minutes = int(
            os.getenv("NUDGE_ACTIVITY_WINDOW_MINUTES", str(self.nudge_activity_window_minutes))
        )
        self.nudge_dismissal_cooldown_hours = int(
            os.getenv("NUDGE_DISMISSAL_COOLDOWN_HOURS", str(self.nudge_dismissal_cooldown_hours))
        )
        self.nudge_quality_window_days = int(
            os.getenv("NUDGE_QUALITY_WINDOW_DAYS", str(self.nudge_quality_window_days))
        )
        self.nudge_quality_min_samples = int(
            os.getenv("NUDGE_QUALITY_MIN_SAMPLES", str(self.nudge_quality_min_samples))
        )
        self.nudge_dismissal_rate_threshold = float(
            os.getenv(
                "NUDGE_DISMISSAL_RATE_THRESHOLD",
                str(self.nudge_dismissal_rate_threshold),
            )
        )

"""
Application configuration. Loads from environment variables.
SMTP credentials must never be hardcoded.
"""
import os
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

load_dotenv()


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


class Settings:
    """Application settings loaded from environment."""

    app_name: str = "Casework"
    log_level: str = "INFO"

    # SQLite locally, PostgreSQL in production
    database_url: str = "sqlite:///./casework.db"

    # Lifecycle
    appeal_window_days: int = 7
    max_write_attempts: int = 3  # compare-on-write retries per operation

    # SMTP / Email
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@casework.local"
    app_url: str = "http://localhost:8000"
    appeal_reviewers: List[str] = []

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.log_level = os.getenv("LOG_LEVEL", self.log_level).upper()

        raw_url = os.getenv("DATABASE_URL", self.database_url)
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if raw_url.startswith("postgres://"):
            raw_url = raw_url.replace("postgres://", "postgresql://", 1)
        self.database_url = raw_url

        self.appeal_window_days = int(
            os.getenv("APPEAL_WINDOW_DAYS", str(self.appeal_window_days))
        )
        self.max_write_attempts = max(
            1, int(os.getenv("MAX_WRITE_ATTEMPTS", str(self.max_write_attempts)))
        )

        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = int(os.getenv("SMTP_PORT", str(self.smtp_port)))
        self.smtp_user = os.getenv("SMTP_USER", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from = os.getenv("SMTP_FROM", self.smtp_from)
        self.app_url = os.getenv("APP_URL", self.app_url).rstrip("/")
        self.appeal_reviewers = [
            address.strip()
            for address in os.getenv("APPEAL_REVIEWERS", "").split(",")
            if address.strip()
        ]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

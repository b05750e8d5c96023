"""Tests for environment-driven settings."""
from casework.config import Settings


class TestSettings:

    def test_postgres_scheme_is_rewritten(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://user:pw@db:5432/casework")
        assert Settings().database_url == "postgresql://user:pw@db:5432/casework"

    def test_lifecycle_settings(self, monkeypatch):
        monkeypatch.setenv("APPEAL_WINDOW_DAYS", "14")
        monkeypatch.setenv("MAX_WRITE_ATTEMPTS", "0")
        settings = Settings()

        assert settings.appeal_window_days == 14
        assert settings.max_write_attempts == 1

    def test_appeal_reviewers_list(self, monkeypatch):
        monkeypatch.setenv("APPEAL_REVIEWERS", "a@school.edu, ,b@school.edu")
        assert Settings().appeal_reviewers == ["a@school.edu", "b@school.edu"]

    def test_smtp_requires_credentials(self, monkeypatch):
        monkeypatch.setenv("SMTP_HOST", "smtp.school.edu")
        monkeypatch.delenv("SMTP_USER", raising=False)
        monkeypatch.delenv("SMTP_PASSWORD", raising=False)
        assert not Settings().smtp_configured

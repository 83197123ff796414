import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        smtp_host: str,
        smtp_port: int,
        smtp_username: Optional[str],
        smtp_password: Optional[str],
        smtp_use_tls: bool,
        smtp_timeout_secs: float,
        email_from: str,
        app_url: str,
        upcoming_window_days: int,
        reminder_lookahead_days: int,
        reminder_hour: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.smtp_timeout_secs = smtp_timeout_secs
        self.email_from = email_from
        self.app_url = app_url
        self.upcoming_window_days = upcoming_window_days
        self.reminder_lookahead_days = reminder_lookahead_days
        self.reminder_hour = reminder_hour

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host)


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINDASH_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "findash.db"
    return Settings(
        database_url=os.getenv("FINDASH_DATABASE_URL", f"sqlite:///{default_db}"),
        timezone=os.getenv("FINDASH_TIMEZONE", "Europe/Berlin"),
        smtp_host=os.getenv("FINDASH_SMTP_HOST", ""),
        smtp_port=int(os.getenv("FINDASH_SMTP_PORT", "587")),
        smtp_username=os.getenv("FINDASH_SMTP_USERNAME") or None,
        smtp_password=os.getenv("FINDASH_SMTP_PASSWORD") or None,
        smtp_use_tls=_env_flag("FINDASH_SMTP_USE_TLS", "true"),
        smtp_timeout_secs=float(os.getenv("FINDASH_SMTP_TIMEOUT_SECS", "10")),
        email_from=os.getenv("FINDASH_EMAIL_FROM", "noreply@findash.local"),
        app_url=os.getenv("FINDASH_APP_URL", "http://localhost:8000"),
        upcoming_window_days=int(os.getenv("FINDASH_UPCOMING_WINDOW_DAYS", "7")),
        reminder_lookahead_days=int(
            os.getenv("FINDASH_REMINDER_LOOKAHEAD_DAYS", "14")
        ),
        reminder_hour=int(os.getenv("FINDASH_REMINDER_HOUR", "8")),
    )

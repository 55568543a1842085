import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        log_level: str,
        bcrypt_rounds: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.log_level = log_level
        self.bcrypt_rounds = bcrypt_rounds


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "finance.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("FINANCE_TIMEZONE", "Asia/Jakarta")
    session_secret = os.getenv(
        "FINANCE_SESSION_SECRET",
        "3f0c9b1e8a7d4c2f6e5b0a9d8c7f6e5d4c3b2a1f0e9d8c7b6a5f4e3d2c1b0a9f",
    )
    session_max_age_hours = int(os.getenv("FINANCE_SESSION_MAX_AGE_HOURS", "720"))
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    bcrypt_rounds = int(os.getenv("FINANCE_BCRYPT_ROUNDS", "12"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        log_level=log_level,
        bcrypt_rounds=bcrypt_rounds,
    )

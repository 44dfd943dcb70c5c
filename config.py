import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        secret_key: str,
        session_max_age_hours: int,
        default_currency: str,
        page_size: int,
        recent_page_size: int,
    ) -> None:
        self.database_url = database_url
        self.secret_key = secret_key
        self.session_max_age_hours = session_max_age_hours
        self.default_currency = default_currency
        self.page_size = page_size
        self.recent_page_size = recent_page_size


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("MONEYDIARY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "moneydiary.db"
    database_url = os.getenv("MONEYDIARY_DATABASE_URL", f"sqlite:///{default_db}")
    secret_key = os.getenv(
        "MONEYDIARY_SECRET_KEY",
        "5d1c0f4e3a7b98e2c6a4f0d1b7e3c9a85f2e6d0c4b8a1f7e3d9c5b2a6e0f4d18",
    )
    session_max_age_hours = int(os.getenv("MONEYDIARY_SESSION_MAX_AGE_HOURS", "168"))
    default_currency = os.getenv("MONEYDIARY_DEFAULT_CURRENCY", "INR").upper()
    page_size = int(os.getenv("MONEYDIARY_PAGE_SIZE", "15"))
    recent_page_size = int(os.getenv("MONEYDIARY_RECENT_PAGE_SIZE", "10"))
    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        session_max_age_hours=session_max_age_hours,
        default_currency=default_currency,
        page_size=page_size,
        recent_page_size=recent_page_size,
    )

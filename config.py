import logging
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database settings
    data_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    seed_file: Optional[str] = os.getenv("LIBRARY_SEED_FILE")

    # Borrowing rules
    max_books_allowed_at_once: int = int(os.getenv("MAX_BOOKS_ALLOWED_AT_ONCE", "3"))
    max_violations: int = int(os.getenv("MAX_VIOLATIONS", "2"))
    max_borrow_duration_days: int = int(os.getenv("MAX_BORROW_DURATION_IN_DAYS", "14"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Checkout API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

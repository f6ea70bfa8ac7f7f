import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings (snapshot server)
    api_host: str = os.getenv("BOOKTRACKER_API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("BOOKTRACKER_API_PORT", "8000"))
    api_key: str = os.getenv("BOOKTRACKER_API_KEY", "super-secret-key")

    # Storage settings
    db_file: str = os.getenv("BOOKTRACKER_DB_FILE", "booktracker.db")
    state_file: str = os.getenv("BOOKTRACKER_STATE_FILE", "library_state.json")

    # Remote sync settings
    remote_url: str = os.getenv("BOOKTRACKER_REMOTE_URL", "http://127.0.0.1:8000")
    user_id: Optional[str] = os.getenv("BOOKTRACKER_USER_ID")
    sync_debounce_seconds: float = float(os.getenv("BOOKTRACKER_SYNC_DEBOUNCE", "2.0"))
    http_timeout: float = float(os.getenv("BOOKTRACKER_HTTP_TIMEOUT", "10"))
    http_retries: int = int(os.getenv("BOOKTRACKER_HTTP_RETRIES", "3"))
    sync_enabled: bool = _env_flag("BOOKTRACKER_SYNC_ENABLED", "True")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Book Tracker")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("BOOKTRACKER_LOG_LEVEL", "INFO")


settings = Settings()

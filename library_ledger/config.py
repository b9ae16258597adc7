import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _default_log_level() -> str:
    # DEBUG=true turns on debug logging unless LOG_LEVEL says otherwise
    return os.getenv("LOG_LEVEL", "DEBUG" if _env_flag("DEBUG", "False") else "INFO").upper()


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    # Seconds a writer waits for the write lock before giving up
    db_busy_timeout: float = float(os.getenv("LIBRARY_DB_BUSY_TIMEOUT", "5.0"))
    seed_sample_data: bool = _env_flag("SEED_SAMPLE_DATA", "False")

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Circulation Ledger")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG", "False")
    log_level: str = _default_log_level()


settings = Settings()

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API Settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Database Settings
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    db_busy_timeout: float = float(os.getenv("DB_BUSY_TIMEOUT", "5"))
    seed_data: bool = _flag("LIBRARY_SEED_DATA", "True")

    # Concurrency conflict retries (delays double on each retry: 100ms, 200ms, 400ms)
    retry_max_attempts: int = int(os.getenv("RETRY_MAX_ATTEMPTS", "3"))
    retry_base_delay_ms: int = int(os.getenv("RETRY_BASE_DELAY_MS", "100"))
    retry_max_delay_ms: int = int(os.getenv("RETRY_MAX_DELAY_MS", "2000"))

    # Pipeline Settings
    slow_request_ms: int = int(os.getenv("SLOW_REQUEST_MS", "500"))
    strict_isbn: bool = _flag("LIBRARY_STRICT_ISBN")

    # Application Settings
    app_name: str = os.getenv("APP_NAME", "E-Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _flag("DEBUG")
    environment: str = os.getenv("ENVIRONMENT", "development")


settings = Settings()

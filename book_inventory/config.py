import os
from dataclasses import dataclass, field
from typing import Callable, Optional

from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: Optional[str] = None) -> Callable[[], Optional[str]]:
    # Read at construction time so a fresh Settings() picks up changed env vars
    return lambda: os.getenv(name, default)


def _env_int(name: str, default: int) -> Callable[[], int]:
    return lambda: int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> Callable[[], float]:
    return lambda: float(os.getenv(name, str(default)))


def _env_bool(name: str, default: bool) -> Callable[[], bool]:
    return lambda: os.getenv(name, str(default)).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = field(default_factory=_env("API_HOST", "127.0.0.1"))
    api_port: int = field(default_factory=_env_int("API_PORT", 8000))
    # When set, write routes require a matching X-API-Key header
    api_key: Optional[str] = field(default_factory=_env("API_KEY"))

    # Database settings
    database_file: str = field(default_factory=_env("INVENTORY_DB_FILE", "inventory.db"))
    database_timeout: float = field(default_factory=_env_float("DATABASE_TIMEOUT", 5.0))  # seconds

    # Upper bound on waiting for a record or ISBN lock
    lock_timeout: float = field(default_factory=_env_float("LOCK_TIMEOUT", 5.0))  # seconds

    # Application settings
    app_name: str = field(default_factory=_env("APP_NAME", "Book Inventory"))
    app_version: str = field(default_factory=_env("APP_VERSION", "1.0.0"))
    log_level: str = field(default_factory=_env("LOG_LEVEL", "INFO"))
    debug: bool = field(default_factory=_env_bool("DEBUG", False))
    environment: str = field(default_factory=_env("ENVIRONMENT", "development"))


settings = Settings()

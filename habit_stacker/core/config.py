"""
Application Configuration Module
"""
import sys
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Katalog danych: obok pliku exe (PyInstaller) albo w katalogu domowym użytkownika
if getattr(sys, "frozen", False):
    _DATA_HOME = Path(sys.executable).parent / "data"
else:
    _DATA_HOME = Path.home() / ".habit_stacker"


class AppConfig(BaseSettings):
    """Application configuration settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application Info
    APP_NAME: str = "Habit Stacker"
    APP_VERSION: str = "0.1.0"

    # Paths
    DATA_DIR: Path = _DATA_HOME
    LOGS_DIR: Path = _DATA_HOME / "logs"
    LOCAL_DB_PATH: Path = Field(
        default=_DATA_HOME / "habit_stacker.db",
        description="SQLite file holding the local key/value slots"
    )

    # Remote store (Supabase REST)
    REMOTE_API_URL: str = Field(
        default="",
        description="Base URL of the remote row store, e.g. https://xyz.supabase.co"
    )
    REMOTE_API_KEY: str = Field(
        default="",
        description="Public API key sent in the apikey header"
    )
    HABIT_TABLE: str = "habit_data"
    CONVERSATION_TABLE: str = "conversation_state"
    REQUEST_TIMEOUT: int = Field(
        default=10,
        description="HTTP timeout in seconds"
    )

    # Sync
    SYNC_DEBOUNCE_SECONDS: float = Field(
        default=0.5,
        description="Quiet window before a batched push is sent"
    )

    # Habit rules
    REENTRY_THRESHOLD_DAYS: int = 7
    PATTERNS_UNLOCK_THRESHOLD: int = 7

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
    LOG_ROTATION: str = "10 MB"
    LOG_RETENTION: str = "1 month"


# Global configuration instance
config = AppConfig()


def get_config() -> AppConfig:
    """Get application configuration instance"""
    return config


def ensure_directories() -> None:
    """Create necessary directories if they don't exist"""
    directories = [
        config.DATA_DIR,
        config.LOGS_DIR,
        config.LOCAL_DB_PATH.parent,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)

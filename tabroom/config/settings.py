"""
Engine Settings

Centralized configuration for the tournament engine.
All settings are loaded from environment variables (optionally via .env).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}")


class Settings:
    """
    Settings for the engine.

    To add a new setting:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./tabroom.db")
    SQL_ECHO: bool = get_bool_env("TABROOM_SQL_ECHO", False)

    # Draw defaults
    DEFAULT_GROUP_SIZE: int = get_int_env("TABROOM_DEFAULT_GROUP_SIZE", 2)
    DEFAULT_PANEL_SIZE: int = get_int_env("TABROOM_DEFAULT_PANEL_SIZE", 1)

    # "manual" leaves sides undecided, "seeded" decides them deterministically
    SIDE_POLICY: str = os.getenv("TABROOM_SIDE_POLICY", "manual").lower()

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def get_all_settings(cls) -> dict:
        """Get all settings as a dictionary."""
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if key.isupper() and not key.startswith('_')
        }


settings = Settings()

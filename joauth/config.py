"""
Configuration Management

Centralized configuration management using environment variables
with proper validation and type safety.
"""

import os
from typing import Optional
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


# Load environment variables from .env in the project root, then the current working directory
_project_root = Path(__file__).resolve().parent.parent
_env_path = _project_root / ".env"
if _env_path.exists():
    load_dotenv(dotenv_path=str(_env_path))
load_dotenv()


LOG_LEVELS = ("debug", "info", "warn", "error", "fatal")

MIN_SALT_ROUNDS = 4
MAX_SALT_ROUNDS = 31


@dataclass
class MongoConfig:
    """MongoDB configuration"""
    uri: str
    db_name: Optional[str] = None  # Database name; if unset, uses 'joauth'
    users_collection: str = "users"


@dataclass
class AuthConfig:
    """Account operation configuration"""
    salt_rounds: int = 12  # bcrypt cost factor
    log_level: str = "debug"  # Minimum severity of account events that get logged

    def __post_init__(self):
        if not MIN_SALT_ROUNDS <= self.salt_rounds <= MAX_SALT_ROUNDS:
            raise ValueError(
                f"salt_rounds must be between {MIN_SALT_ROUNDS} and {MAX_SALT_ROUNDS}, got {self.salt_rounds}"
            )
        self.log_level = self.log_level.lower()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}")


@dataclass
class Config:
    """Main application configuration"""

    # MongoDB configuration
    mongo: MongoConfig

    # Hashing and account event logging
    auth: AuthConfig = field(default_factory=AuthConfig)

    # Process logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    @classmethod
    def from_env(cls) -> "Config":
        """
        Create configuration from environment variables.

        Returns:
            Configured Config instance

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        mongodb_uri = os.getenv("MONGODB_URI")
        if not mongodb_uri:
            raise ValueError("MONGODB_URI environment variable is required")

        salt_rounds = os.getenv("BCRYPT_SALT_ROUNDS", "12")
        try:
            salt_rounds = int(salt_rounds)
        except ValueError:
            raise ValueError(f"BCRYPT_SALT_ROUNDS must be an integer, got {salt_rounds!r}")

        return cls(
            mongo=MongoConfig(
                uri=mongodb_uri,
                db_name=os.getenv("MONGODB_DB_NAME") or None,
                users_collection=os.getenv("MONGODB_USERS_COLLECTION", "users"),
            ),
            auth=AuthConfig(
                salt_rounds=salt_rounds,
                log_level=os.getenv("ACCOUNT_LOG_LEVEL", "debug"),
            ),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_FORMAT=os.getenv(
                "LOG_FORMAT",
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            ),
        )


def get_config() -> Config:
    """
    Get configuration from environment variables.

    Returns:
        Configuration instance
    """
    return Config.from_env()

"""Configuration module for Event Planner Service.

This module provides configuration settings using Pydantic Settings.
Environment variables can be used to override default values.
"""

from typing import Dict, List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings for Event Planner Service.

    All settings can be overridden via environment variables.
    Example: export DATABASE_URL="postgresql://..."
    """

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./events.db"
    """Database connection URL. Default: SQLite file in current directory"""

    # API Server Configuration
    API_HOST: str = "0.0.0.0"
    """API server host address"""

    API_PORT: int = 3000
    """API server port"""

    # General Configuration
    TIMEZONE: str = "UTC"
    """Timezone in which event date and time-of-day are interpreted"""

    DEFAULT_CATEGORIES: List[str] = ["Meetings", "Birthdays", "Appointments", "Personal", "Work"]
    """Categories seeded into an empty database"""

    # Logging
    LOG_DIR: str = "logs"
    """Directory for component log files, relative to the service directory"""

    LOG_LEVEL: str = "INFO"
    """Default level for every component logger"""

    LOG_LEVELS: Dict[str, str] = {}
    """Per log file overrides, e.g. {"worker.log": "DEBUG"}"""

    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5
    LOG_TO_CONSOLE: bool = True

    # Authentication
    JWT_SECRET: str = "your-secret-key"
    """Secret used to sign access tokens"""

    JWT_ALGORITHM: str = "HS256"

    ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60
    """Access token lifetime (default: 24 hours)"""

    # Background Worker Configuration
    WORKER_ENABLED: bool = True
    """Enable/disable the reminder sweep worker"""

    WORKER_CHECK_INTERVAL: int = 60
    """Interval in seconds between reminder sweeps (default: 60 seconds)"""

    REMINDER_TOLERANCE_SECONDS: int = 60
    """Max distance between now and a trigger instant for a reminder to be due"""

    REMINDER_AT_MOST_ONCE: bool = False
    """Record when a reminder fired and never deliver it twice for the same trigger"""

    NOTIFY_TIMEOUT_SECONDS: float = 30.0
    """Upper bound for a single notification delivery"""

    # Email Delivery
    SMTP_HOST: str = "smtp.example.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = False
    """Upgrade the SMTP connection with STARTTLS"""

    EMAIL_FROM: str = "noreply@eventplanner.com"

    # Push Delivery
    PUSH_WEBHOOK_URL: Optional[str] = None
    """Optional webhook that receives in-app notifications as JSON"""

    class Config:
        """Pydantic config"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()

"""
Configuration management for Classroom Sync.

Settings come from config/settings.yaml (non-secret defaults) and from the
environment or .env (OAuth client, user id, endpoint overrides). Both are
validated with pydantic.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = PROJECT_ROOT / "data"


def _validate_clock_time(value: str) -> str:
    hours, sep, minutes = value.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        raise ValueError(f"Expected HH:MM, got {value!r}")
    if not (0 <= int(hours) <= 23 and 0 <= int(minutes) <= 59):
        raise ValueError(f"Time out of range: {value!r}")
    return f"{int(hours):02d}:{int(minutes):02d}"


class DeadlineReminderConfig(BaseModel):
    """Deadline reminder configuration."""
    enabled: bool = True
    window_hours: float = Field(default=168, gt=0)  # 1 week


class GradeNotificationConfig(BaseModel):
    """Grade notification configuration."""
    enabled: bool = True


class StudySummaryConfig(BaseModel):
    """Per-cycle study status summary configuration."""
    enabled: bool = True
    due_soon_hours: float = Field(default=72, gt=0)


class QuietHoursConfig(BaseModel):
    """Quiet hours: notifications are recorded but not alerted."""
    enabled: bool = False
    start: str = "22:00"
    end: str = "08:00"

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _validate_clock_time(v)


class NotificationSettings(BaseModel):
    """Notification engine settings (persisted per user)."""
    deadline_reminders: DeadlineReminderConfig = Field(default_factory=DeadlineReminderConfig)
    grade_notifications: GradeNotificationConfig = Field(default_factory=GradeNotificationConfig)
    study_summary: StudySummaryConfig = Field(default_factory=StudySummaryConfig)
    quiet_hours: QuietHoursConfig = Field(default_factory=QuietHoursConfig)


class ApiConfig(BaseModel):
    """Remote API configuration."""
    classroom_base_url: str = "https://classroom.googleapis.com/v1"
    drive_base_url: str = "https://www.googleapis.com/drive/v3"
    drive_upload_url: str = "https://www.googleapis.com/upload/drive/v3"
    provider: str = "google_classroom"
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=2.0, ge=1.0)


class CacheSettings(BaseModel):
    """TTL cache configuration (seconds)."""
    enabled: bool = True
    profile_ttl: float = Field(default=300, ge=0)
    class_list_ttl: float = Field(default=300, ge=0)
    documents_ttl: float = Field(default=300, ge=0)


class NtfyConfig(BaseModel):
    """Optional ntfy push sink for desktop-style alerts."""
    enabled: bool = False
    server_url: str = "https://ntfy.sh"
    topic: str = "classroom-sync"
    timeout: float = Field(default=10.0, gt=0)


class GeneralConfig(BaseModel):
    """General configuration."""
    name: str = "Classroom Sync"
    debug: bool = False
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    data_dir: str = "data"
    store_file: str = "classroom_sync.db"


class AppConfig(BaseModel):
    """Main application configuration."""
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    ntfy: NtfyConfig = Field(default_factory=NtfyConfig)

    @property
    def store_path(self) -> Path:
        data_dir = Path(self.general.data_dir)
        if not data_dir.is_absolute():
            data_dir = PROJECT_ROOT / data_dir
        return data_dir / self.general.store_file


class EnvSettings(BaseSettings):
    """Environment variables settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Google OAuth client (used by the out-of-process authorization handshake)
    google_client_id: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: Optional[str] = Field(default=None, alias="GOOGLE_CLIENT_SECRET")

    # Overrides
    classroom_base_url: Optional[str] = Field(default=None, alias="CLASSROOM_BASE_URL")
    classroom_user_id: Optional[str] = Field(default=None, alias="CLASSROOM_USER_ID")
    ntfy_topic: Optional[str] = Field(default=None, alias="NTFY_TOPIC")

    @field_validator("google_client_id", "google_client_secret", mode="before")
    @classmethod
    def drop_placeholders(cls, v):
        """Treat template placeholders as unset."""
        if isinstance(v, str) and (not v.strip() or v.startswith("your_")):
            return None
        return v


def load_yaml_config(config_path: Path | str | None = None) -> Dict[str, Any]:
    """Read settings.yaml; a missing file means all defaults."""
    path = Path(config_path) if config_path else CONFIG_DIR / "settings.yaml"
    if not path.is_file():
        return {}
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def get_config(config_path: Path | str | None = None) -> AppConfig:
    """
    Load and return the application configuration.

    Merges YAML configuration with environment variables.
    """
    yaml_config = load_yaml_config(config_path)
    app_config = AppConfig(**yaml_config)

    settings = get_env_settings()
    if settings.classroom_base_url:
        app_config.api.classroom_base_url = settings.classroom_base_url
    if settings.ntfy_topic:
        app_config.ntfy.topic = settings.ntfy_topic
        app_config.ntfy.enabled = True
    return app_config


def get_env_settings() -> EnvSettings:
    """Get environment settings."""
    return EnvSettings()


# Global configuration instances (lazy loaded)
_config: Optional[AppConfig] = None
_env_settings: Optional[EnvSettings] = None


def config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = get_config()
    return _config


def env() -> EnvSettings:
    """Get the global environment settings instance."""
    global _env_settings
    if _env_settings is None:
        _env_settings = get_env_settings()
    return _env_settings


def ensure_directories(app_config: Optional[AppConfig] = None) -> None:
    """Ensure required directories exist."""
    app_config = app_config or config()
    directories = [
        app_config.store_path.parent,
        DATA_DIR / "logs",
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)

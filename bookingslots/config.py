"""
Configuration management using Pydantic models loaded from YAML.
"""

import os
from datetime import time
from pathlib import Path
from typing import List

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import InvalidRequestError
from .domain.models import MAX_REQUEST_MINUTES, WorkWindow, parse_time_of_day

DB_PATH_ENV_VAR = "APP_DB_PATH"


def _validate_hhmm(value: str) -> str:
    try:
        parse_time_of_day(value)
    except InvalidRequestError as exc:
        raise ValueError(str(exc)) from exc
    return value.strip()


class DefaultsConfig(BaseModel):
    """Default parameters for availability queries."""
    duration_minutes: int = 30
    buffer_minutes: int = 15
    granularity_minutes: int = 15

    @field_validator("duration_minutes", "buffer_minutes")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        """Zero is valid (no duration / no padding), negatives and more than a day are not."""
        if value < 0:
            raise ValueError(f"Minutes must not be negative, got {value}")
        if value > MAX_REQUEST_MINUTES:
            raise ValueError(f"Minutes must be at most {MAX_REQUEST_MINUTES}, got {value}")
        return value

    @field_validator("granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        """Ensure the scan step is positive and at most one day."""
        if not 0 < value <= MAX_REQUEST_MINUTES:
            raise ValueError(f"granularity_minutes must be between 1 and {MAX_REQUEST_MINUTES}")
        return value


class FallbackWindowConfig(BaseModel):
    """Window scanned on weekdays without any configured work window."""
    start: str = "08:00"
    end: str = "18:00"

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        """Validate HH:MM format."""
        return _validate_hhmm(v)

    @model_validator(mode="after")
    def validate_order(self) -> "FallbackWindowConfig":
        """Ensure the window opens before it closes."""
        if self.get_end_time() <= self.get_start_time():
            raise ValueError("fallback_window end must be later than start")
        return self

    def get_start_time(self) -> time:
        return parse_time_of_day(self.start)

    def get_end_time(self) -> time:
        return parse_time_of_day(self.end)


class WorkWindowConfig(BaseModel):
    """Seed work window applied by ``init-db``."""
    weekday: int
    start: str
    end: str

    @field_validator("weekday")
    @classmethod
    def validate_weekday(cls, v: int) -> int:
        if not 0 <= v <= 6:
            raise ValueError(f"weekday must be between 0 and 6, got {v}")
        return v

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _validate_hhmm(v)

    def to_window(self) -> WorkWindow:
        try:
            return WorkWindow(
                weekday=self.weekday,
                start=parse_time_of_day(self.start),
                end=parse_time_of_day(self.end),
            )
        except InvalidRequestError as exc:
            raise ValueError(str(exc)) from exc


class ServerConfig(BaseModel):
    """HTTP server settings."""
    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {v}")
        return v


class BookingConfig(BaseModel):
    """Commit-time booking rules."""
    allow_past: bool = False


class AppConfig(BaseModel):
    """Application configuration."""
    database_path: str = "data/bookings.db"
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    fallback_window: FallbackWindowConfig = Field(default_factory=FallbackWindowConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    booking: BookingConfig = Field(default_factory=BookingConfig)
    log_level: str = "INFO"
    work_windows: List[WorkWindowConfig] = Field(default_factory=list)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log_level: {value}")
        return level

    @model_validator(mode="after")
    def validate_work_windows(self) -> "AppConfig":
        """Seed windows must be well-formed (start before end)."""
        for window in self.work_windows:
            window.to_window()
        return self

    def resolve_database_path(self) -> str:
        """The database path, with the environment variable taking precedence."""
        return os.environ.get(DB_PATH_ENV_VAR) or self.database_path

    def seed_windows(self) -> List[WorkWindow]:
        return [w.to_window() for w in self.work_windows]

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    @classmethod
    def load(cls, config_path: Path | None = None) -> "AppConfig":
        """
        Load the given or default config file, falling back to built-in defaults.

        An explicitly given path must exist.
        """
        if config_path is not None:
            return cls.load_from_yaml(config_path)

        default_path = get_default_config_path()
        if default_path.exists():
            return cls.load_from_yaml(default_path)
        return cls()


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path

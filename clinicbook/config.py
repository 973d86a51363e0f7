"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, field_validator, model_validator


class AppConfig(BaseModel):
    """Application configuration."""
    data_dir: Path = Path("data")
    providers_file: str = "providers.json"
    bookings_file: str = "bookings.json"
    booking_window_days: int = 60
    default_slot_capacity: int = 5
    log_level: str = "WARNING"

    @field_validator("booking_window_days")
    @classmethod
    def validate_window(cls, value: int) -> int:
        """Ensure the booking window covers at least today."""
        if value <= 0:
            raise ValueError("booking_window_days must be greater than zero")
        return value

    @field_validator("default_slot_capacity")
    @classmethod
    def validate_capacity(cls, value: int) -> int:
        """Ensure new slots accept at least one booking."""
        if value < 1:
            raise ValueError(f"default_slot_capacity must be at least 1, got {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept the standard logging level names, case-insensitively."""
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def validate_distinct_files(self) -> "AppConfig":
        """Providers and bookings must not share a file."""
        if self.providers_file == self.bookings_file:
            raise ValueError("providers_file and bookings_file must differ")
        return self

    def providers_path(self) -> Path:
        return self.data_dir / self.providers_file

    def bookings_path(self) -> Path:
        return self.data_dir / self.bookings_file

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Relative ``data_dir`` values are resolved against the config file's
        directory.

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

        config = cls(**data)
        if not config.data_dir.is_absolute():
            config.data_dir = config_path.parent / config.data_dir
        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of clinicbook/)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path

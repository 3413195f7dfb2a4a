"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from pathlib import Path
from typing import List

import yaml
from pydantic import BaseModel, Field, field_validator

from .domain.slot_calculator import DEFAULT_OCCUPYING_STATUSES, SlotCalculator


class SchedulingConfig(BaseModel):
    """Settings for slot generation and booking validation."""
    default_duration_minutes: int = 30
    max_slots_per_day: int = 50
    fail_open_on_unknown_weekday: bool = True  # Unknown weekday names count as working days
    enforce_slot_grid: bool = False
    calendar_horizon_days: int = 60
    occupying_statuses: List[str] = Field(default_factory=lambda: list(DEFAULT_OCCUPYING_STATUSES))

    @field_validator("default_duration_minutes", "max_slots_per_day", "calendar_horizon_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure counts and durations are positive."""
        if value <= 0:
            raise ValueError(f"Value must be greater than zero, got {value}")
        return value

    @field_validator("occupying_statuses")
    @classmethod
    def validate_occupying_statuses(cls, value: List[str]) -> List[str]:
        """Lower-case, deduplicate, and refuse statuses that must never hold a slot."""
        # Preserve order while removing duplicates
        seen: set[str] = set()
        statuses: List[str] = []
        for status in value:
            key = status.strip().lower()
            if key == "cancelled":
                raise ValueError("Cancelled appointments cannot occupy time")
            if key and key not in seen:
                statuses.append(key)
                seen.add(key)
        if not statuses:
            raise ValueError("occupying_statuses must not be empty")
        return statuses

    def build_calculator(self) -> SlotCalculator:
        """Create a SlotCalculator with these settings."""
        return SlotCalculator(
            default_duration_minutes=self.default_duration_minutes,
            max_slots=self.max_slots_per_day,
            fail_open_on_unknown_weekday=self.fail_open_on_unknown_weekday,
            occupying_statuses=self.occupying_statuses,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    database_url: str = "sqlite:///dentalslots.db"
    log_level: str = "WARNING"
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Ensure the log level is one the logging module knows."""
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

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
    def load_or_default(cls, config_path: Path | None = None) -> "AppConfig":
        """Load ``config_path`` (or the default path) if it exists, else use defaults."""
        path = config_path or get_default_config_path()
        if config_path is None and not path.exists():
            return cls()
        return cls.load_from_yaml(path)


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

"""Configuration: environment variables and the user configuration file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.models import ConflictPolicy
from .templates.manifest import stringify_scalar

logger = logging.getLogger(__name__)

APP_NAME = "utsusu"
DEFAULT_CONFIG_FILENAME = "config.yml"
DEFAULT_TEMPLATES_DIRNAME = "templates"


class ConfigFileError(ValueError):
    """Raised when the user configuration file cannot be used."""


def app_dir() -> Path:
    return Path(typer.get_app_dir(APP_NAME))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="UTSUSU_", case_sensitive=False)

    templates_dir: Path = Field(
        default_factory=lambda: app_dir() / DEFAULT_TEMPLATES_DIRNAME
    )
    config_file: Path = Field(default_factory=lambda: app_dir() / DEFAULT_CONFIG_FILENAME)
    on_conflict: ConflictPolicy = ConflictPolicy.FAIL
    follow_symlinks: bool = False
    engine: str = "jinja"


class UserConfig(BaseModel):
    """Contents of the user configuration file."""

    templates_dir: Path | None = None
    on_conflict: ConflictPolicy | None = None
    follow_symlinks: bool | None = None
    engine: str | None = None
    variables: dict[str, str] = Field(
        default_factory=dict, description="Values applied to every template"
    )

    @field_validator("variables", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("variables must be a mapping")
        return {str(k): stringify_scalar(v) for k, v in value.items()}


def load_user_config(path: Path) -> UserConfig:
    """Load the user configuration file; a missing file yields defaults.

    Raises:
        ConfigFileError: If the file is unreadable or malformed
    """
    if not path.is_file():
        logger.debug(f"No user configuration at {path}")
        return UserConfig()

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(f"Cannot read configuration file {path}: {e}") from e

    if data is None:
        return UserConfig()
    if not isinstance(data, dict):
        raise ConfigFileError(f"Configuration file {path} must be a mapping")

    try:
        config = UserConfig.model_validate(data)
    except (ValidationError, ValueError) as e:
        raise ConfigFileError(f"Invalid configuration file {path}: {e}") from e

    logger.debug(f"Loaded user configuration from {path}")
    return config


def load_settings(config_file: Path | None = None) -> tuple[Settings, UserConfig]:
    """Resolve settings: environment > user configuration file > defaults.

    Args:
        config_file: Explicit configuration file (overrides UTSUSU_CONFIG_FILE)

    Returns:
        Effective settings and the parsed user configuration
    """
    settings = Settings()
    if config_file is not None:
        settings = settings.model_copy(update={"config_file": config_file})

    user_config = load_user_config(settings.config_file)

    updates = {
        field: value
        for field, value in user_config.model_dump(exclude={"variables"}).items()
        if value is not None and field not in settings.model_fields_set
    }
    if updates:
        settings = settings.model_copy(update=updates)
    return settings, user_config

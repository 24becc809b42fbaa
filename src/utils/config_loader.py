"""Configuration loader for the time-series exporter."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from src.models.config import AppConfig
from src.models.timeseries import SamplingPeriod

log = structlog.stdlib.get_logger()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ConfigLoader:
    """Loads and validates exporter configuration from YAML files and environment variables."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize the ConfigLoader.

        Args:
            config_dir: Directory holding <env>.yaml files. Defaults to ./config at the repo root.
        """
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")
        self._config_dir = config_dir or Path(__file__).parent.parent.parent / "config"

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the configuration YAML file. If None, uses the
                         file selected by APP_ENV (falling back to default.yaml)

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If configuration file is missing or invalid
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        log.info("configuration_loaded_successfully")
        return app_config

    def _get_default_config_path(self) -> str:
        env = os.getenv("APP_ENV", "default")
        config_file = self._config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = self._config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set APP_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration file {config_path}: {e}") from e

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")

        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ${VAR_NAME} references with environment values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        matches = self.env_var_pattern.findall(value)

        for var_name in matches:
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable not set: {var_name}. "
                    f"Please set {var_name} in your environment or .env file."
                )
            value = value.replace(f"${{{var_name}}}", env_value)

        return value

    def validate_config(self, config: AppConfig) -> list[str]:
        """Validate configuration and return any warnings.

        Pydantic rejects malformed values while loading; this covers combinations
        that are legal but probably unintended.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []
        export = config.export

        if export.force_resync and export.never_resync:
            warnings.append(
                "force_resync and never_resync are both set; force_resync wins for the first query"
            )

        if export.changes_since is not None and export.force_resync:
            warnings.append("changes_since is ignored when force_resync is set")

        unbounded = sorted(
            period.value
            for period in SamplingPeriod
            if period is not SamplingPeriod.WATER_YEAR
            and export.maximum_point_days.get(period, 0) <= 0
        )
        if SamplingPeriod.UNKNOWN.value in unbounded:
            warnings.append(
                "maximum_point_days has no bound for Unknown; series of unknown frequency "
                "will export their entire history"
            )

        if (
            export.maximum_export_duration is not None
            and export.maximum_export_duration.total_seconds() / 3600
            >= config.cursor.token_lifetime_hours
        ):
            warnings.append(
                "maximum_export_duration is not shorter than the change token lifetime; "
                "the starting token may expire before the pass finishes"
            )

        if warnings:
            log.warning(
                "configuration_validation_warnings",
                warnings=warnings,
                unbounded_periods=unbounded,
            )

        return warnings

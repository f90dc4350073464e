"""
Configuration loader with environment variable handling.

Loads configuration from:
1. config.yaml (main config)
2. .env.local / .env next to it (loaded into process env)
3. GRIDGUARD_* environment variables (highest priority)

Only deployment-level settings (mode, directories, persistence switch) can
be overridden from the environment. Breaker thresholds live in YAML so that
every change to them is reviewed.
"""

import os
from pathlib import Path
from typing import Dict, Any, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError


class ConfigurationError(ValueError):
    """Invalid or inconsistent configuration. System initialization must fail."""
    pass


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Priority (highest to lowest):
    1. OS environment variables
    2. .env.local / .env file
    3. config.yaml
    """

    ENV_PREFIX = "GRIDGUARD_"
    ENV_FILES = (".env.local", ".env")
    TRUE_VALUES = {"1", "true", "yes", "y", "on"}

    def __init__(self, config_file: Path = Path("config/config.yaml")):
        self.config_file = Path(config_file)
        self.config_dir = self.config_file.parent

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources.

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ConfigurationError: If the file is empty or not a mapping
        """
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        with open(self.config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if config is None:
            raise ConfigurationError(f"Empty configuration file: {self.config_file}")
        if not isinstance(config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_file}")

        self.load_env_files()

        self._apply_env_overrides(config)
        return config

    def load_env_files(self) -> List[Path]:
        """
        Load .env.local then .env from the config directory.

        Already-set variables win, so the OS environment beats .env.local,
        which beats .env. Returns the files actually loaded.
        """
        loaded = []
        for name in self.ENV_FILES:
            path = self.config_dir / name
            if path.is_file():
                load_dotenv(dotenv_path=path, override=False)
                loaded.append(path)
        return loaded

    def _flag(self, name: str) -> bool:
        return os.getenv(name, "").strip().lower() in self.TRUE_VALUES

    def _apply_env_overrides(self, config: Dict[str, Any]) -> None:
        mode = os.getenv(f"{self.ENV_PREFIX}MODE")
        if mode:
            config["mode"] = mode.strip().lower()

        state_dir = os.getenv(f"{self.ENV_PREFIX}STATE_DIR")
        if state_dir:
            config.setdefault("persistence", {})["state_dir"] = state_dir

        if os.getenv(f"{self.ENV_PREFIX}PERSISTENCE") is not None:
            config.setdefault("persistence", {})["enabled"] = self._flag(f"{self.ENV_PREFIX}PERSISTENCE")

        log_dir = os.getenv(f"{self.ENV_PREFIX}LOG_DIR")
        if log_dir:
            config.setdefault("logging", {})["log_dir"] = log_dir

    def load_and_validate(self):
        """
        Load and validate configuration.

        Returns:
            EngineConfig instance
        """
        config_dict = self.load()
        return validate_config(config_dict)


def validate_config(config_dict: Dict[str, Any]):
    """Validate a raw mapping into an EngineConfig, raising ConfigurationError."""
    from .schema import EngineConfig

    try:
        return EngineConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def load_config(config_file: Optional[Path] = None):
    """
    Convenience function to load and validate configuration.

    Args:
        config_file: YAML file; None returns the validated defaults

    Returns:
        Validated EngineConfig instance
    """
    if config_file is None:
        return validate_config({})
    return ConfigLoader(config_file).load_and_validate()

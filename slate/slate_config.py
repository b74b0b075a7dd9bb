"""Configuration management for slate sessions."""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

import yaml

CONFIG_ENV_VAR = "SLATE_CONFIG"


@dataclass
class PreludeConfig:
    """The synthetic module that holds one reference cell per host binding."""

    module: str = "slate.Prelude"
    ref_suffix: str = "Ref"
    placeholder_type: str = "a"


@dataclass
class CompilerConfig:
    script_prefix: str = "Script"
    max_errors: int = 20


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    format: str = "%(asctime)s %(name)s %(levelname)s %(message)s"


@dataclass
class Settings:
    prelude: PreludeConfig = field(default_factory=PreludeConfig)
    compiler: CompilerConfig = field(default_factory=CompilerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "Settings":
        """Load settings from YAML file with environment variable expansion."""
        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        if not isinstance(data, dict):
            raise ValueError("configuration must be a mapping")
        data = cls._expand_env_vars(data)
        sections = {f.name: f.default_factory for f in fields(cls)}
        unknown = set(data) - set(sections)
        if unknown:
            raise ValueError(f"Unknown configuration section(s): {', '.join(sorted(unknown))}")
        return cls(**{name: cls._parse_section(name, section, data.get(name) or {})
                      for name, section in sections.items()})

    @staticmethod
    def _parse_section(name: str, section_cls, values: Dict[str, Any]):
        allowed = {f.name for f in fields(section_cls)}
        unknown = set(values) - allowed
        if unknown:
            raise ValueError(f"Unknown key(s) in '{name}': {', '.join(sorted(unknown))}")
        return section_cls(**values)

    @staticmethod
    def _expand_env_vars(data: Any) -> Any:
        """Recursively expand environment variables in configuration."""
        if isinstance(data, dict):
            return {k: Settings._expand_env_vars(v) for k, v in data.items()}
        elif isinstance(data, list):
            return [Settings._expand_env_vars(item) for item in data]
        elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
            env_var = data[2:-1]
            return os.environ.get(env_var, "")
        return data


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load settings from `config_path`, else from $SLATE_CONFIG, else the defaults."""
    config_path = config_path or os.environ.get(CONFIG_ENV_VAR)
    if not config_path:
        return Settings()
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    return Settings.from_yaml(config_path)


def configure_logging(settings: Settings):
    logging.basicConfig(level=settings.logging.level.upper(), format=settings.logging.format)

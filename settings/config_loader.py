import os
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.exceptions import ConfigLoadError
from settings.chaos_config import ChaosConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "rucho.yaml"
ENV_PREFIX = "RUCHO_"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

# Environment variable suffix -> (section, key); section None is top level
ENV_KEYS = {
    "HOST": (None, "host"),
    "PORT": (None, "port"),
    "LOG_LEVEL": (None, "log_level"),
    "CHAOS_MODES": ("chaos", "modes"),
    "CHAOS_FAILURE_RATE": ("chaos", "failure_rate"),
    "CHAOS_FAILURE_CODES": ("chaos", "failure_codes"),
    "CHAOS_DELAY_RATE": ("chaos", "delay_rate"),
    "CHAOS_DELAY_MS": ("chaos", "delay_ms"),
    "CHAOS_DELAY_MAX_MS": ("chaos", "delay_max_ms"),
    "CHAOS_CORRUPTION_RATE": ("chaos", "corruption_rate"),
    "CHAOS_CORRUPTION_TYPE": ("chaos", "corruption_type"),
    "CHAOS_INFORM_HEADER": ("chaos", "inform_header"),
}


class ServerSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = Field("0.0.0.0", description="Address the HTTP server binds to")
    port: int = Field(8080, ge=1, le=65535, description="Port the HTTP server listens on")
    log_level: str = Field("info", description="Root log level")
    chaos: ChaosConfig = Field(default_factory=ChaosConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        v = v.lower()
        # "notice" is accepted for compatibility with older rucho.conf files
        if v == "notice":
            return "info"
        if v not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {v}")
        return v


class ConfigLoader:
    """
    Builds ServerSettings from, in increasing precedence: defaults, a YAML
    file, RUCHO_* environment variables and explicit overrides.
    """

    @staticmethod
    def load(
        config_path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> ServerSettings:
        environ = os.environ if environ is None else environ

        data: Dict[str, Any] = {}
        source = "defaults"

        if config_path is not None:
            data = ConfigLoader.load_file(config_path)
            source = str(config_path)
        elif Path(DEFAULT_CONFIG_PATH).exists():
            data = ConfigLoader.load_file(DEFAULT_CONFIG_PATH)
            source = DEFAULT_CONFIG_PATH

        _merge(data, ConfigLoader.from_environ(environ))
        _merge(data, overrides or {})

        return ConfigLoader.load_from_dict(data, source)

    @staticmethod
    def load_file(file_path: Union[str, Path]) -> Dict[str, Any]:
        file_path = Path(file_path)
        if not file_path.exists():
            raise ConfigLoadError("Config file not found", str(file_path))

        try:
            with file_path.open("r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError("Failed to parse YAML", str(file_path), e)

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigLoadError("Config data must be a mapping", str(file_path))

        logger.debug(f"Loaded config file {file_path}")
        return content

    @staticmethod
    def from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for suffix, (section, key) in ENV_KEYS.items():
            value = environ.get(ENV_PREFIX + suffix)
            if value is None:
                continue
            target = data.setdefault(section, {}) if section else data
            target[key] = value
        return data

    @staticmethod
    def load_from_dict(data: Dict[str, Any], source: Optional[str] = None) -> ServerSettings:
        source_str = source or "dictionary"
        try:
            return ServerSettings.model_validate(data)
        except ValidationError as e:
            raise ConfigLoadError(
                f"Config validation failed with {e.error_count()} error(s)",
                source_str,
                str(e),
            )


def _merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base

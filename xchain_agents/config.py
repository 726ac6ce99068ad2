"""
Tool Configuration

Settings for the compiler and verifier themselves (not the environment
policy they operate on), from YAML files, environment variables and
runtime overrides.

Configuration Sources (in order of precedence):
    1. Environment variables (XCHAIN_*)
    2. Runtime overrides and loaded files, last write wins
    3. Default values

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from xchain_agents.errors import AgentConfigError

T = TypeVar("T")

DEFAULT_CONFIG_PATHS = (
    Path("xchain-agents.yaml"),
    Path("config/xchain-agents.yaml"),
)


class ConfigError(AgentConfigError):
    """Tool configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """A configuration value failed its validator."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports a default, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")
        self._value = value

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        target_type = type(self.default)
        try:
            if target_type == bool:
                return value.lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            elif target_type == float:
                return float(value)  # type: ignore
            return value  # type: ignore
        except ValueError:
            raise ConfigValidationError(
                f"Cannot convert {value!r} to {target_type.__name__}"
            ) from None


@dataclass
class AwsSettings:
    """Cloud provisioning defaults."""
    region: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="us-east-1",
        env_var="XCHAIN_AWS_REGION",
        description="Region used when an environment declares managed keys without one",
        validator=lambda x: bool(x),
    ))
    profile: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="XCHAIN_AWS_PROFILE",
        description="Named AWS profile for boto3 sessions (empty for the default chain)",
    ))


@dataclass
class SecretsSettings:
    """Secret store access."""
    gcloud_binary: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="gcloud",
        env_var="XCHAIN_GCLOUD_BINARY",
        description="gcloud executable used to query Secret Manager",
        validator=lambda x: bool(x),
    ))
    project: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="XCHAIN_GCLOUD_PROJECT",
        description="GCP project holding agent secrets (empty for the gcloud default)",
    ))


@dataclass
class VerifierSettings:
    """Checkpoint verification."""
    max_concurrent_chains: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=4,
        env_var="XCHAIN_VERIFIER_MAX_CHAINS",
        description="Chains verified concurrently",
        validator=lambda x: x > 0,
    ))
    max_concurrent_candidates: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=4,
        env_var="XCHAIN_VERIFIER_MAX_CANDIDATES",
        description="Candidates compared concurrently per chain",
        validator=lambda x: x > 0,
    ))
    fetch_retry_attempts: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=3,
        env_var="XCHAIN_VERIFIER_RETRY_ATTEMPTS",
        description="Attempts per checkpoint read",
        validator=lambda x: x >= 1,
    ))
    fetch_retry_base_delay_seconds: ConfigValue[float] = field(default_factory=lambda: ConfigValue(
        default=0.5,
        env_var="XCHAIN_VERIFIER_RETRY_DELAY",
        description="Base backoff delay between checkpoint read attempts",
        validator=lambda x: x >= 0,
    ))
    unsigned_requests: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=False,
        env_var="XCHAIN_VERIFIER_UNSIGNED",
        description="Read public checkpoint buckets without AWS credentials",
    ))


@dataclass
class ObservabilitySettings:
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="XCHAIN_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="XCHAIN_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class ToolConfig:
    """Root configuration."""
    aws: AwsSettings = field(default_factory=AwsSettings)
    secrets: SecretsSettings = field(default_factory=SecretsSettings)
    verifier: VerifierSettings = field(default_factory=VerifierSettings)
    observability: ObservabilitySettings = field(default_factory=ObservabilitySettings)

    def to_dict(self) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._config = ToolConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton; the next ConfigManager() starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> ToolConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration file {path} must contain a mapping")
            self._apply_dict(data)
        self._config_paths.append(path)

    def load_defaults(self) -> Optional[Path]:
        """Load the first default configuration file that exists."""
        for path in DEFAULT_CONFIG_PATHS:
            if path.exists():
                self.load_from_file(path)
                return path
        return None

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigError(f"Invalid value for config section {path}")

        apply_to_config(self._config, data, "")

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not part or part.startswith("_") or not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("verifier.max_concurrent_chains", 8)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value, or a section as a dict, by path.

        Example: config.get("aws.region")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        if hasattr(obj, "__dataclass_fields__"):
            return {
                k: getattr(obj, k).get() if isinstance(getattr(obj, k), ConfigValue) else getattr(obj, k)
                for k in obj.__dataclass_fields__
            }
        return obj

    def validate(self) -> List[str]:
        """Validate all configuration values; returns the list of errors."""
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> ToolConfig:
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    return ConfigManager()

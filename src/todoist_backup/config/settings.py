"""Configuration settings and models for the backup application."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..exceptions import ConfigError

DEFAULT_BASE_URL = "https://api.todoist.com/sync/v9"
DEFAULT_CONFIG_FILE = Path("config.json")
ENV_PREFIX = "TODOISTBACKUP"


class ClientConfig(BaseModel):
    """Todoist API client settings."""
    model_config = ConfigDict(extra="forbid")

    token: str
    timeout: int = 5  # seconds
    base_url: str = DEFAULT_BASE_URL

    @field_validator('token')
    @classmethod
    def validate_token(cls, v):
        if not v or not v.strip():
            raise ValueError('token is empty')
        return v.strip()

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError('timeout must be a positive number of seconds')
        return v


class StoreConfig(BaseModel):
    """S3 compatible storage settings."""
    model_config = ConfigDict(extra="forbid")

    bucket: str
    endpoint: str
    region: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    insecure: bool = False

    @field_validator('bucket', 'endpoint')
    @classmethod
    def validate_required(cls, v, info):
        if not v or not v.strip():
            raise ValueError(f'{info.field_name} is empty')
        return v.strip()

    @field_validator('region', 'access_key', 'secret_key')
    @classmethod
    def empty_as_none(cls, v):
        return v or None

    @property
    def endpoint_url(self) -> str:
        """Endpoint as a URL, honouring the insecure flag for bare hosts."""
        if "://" in self.endpoint:
            return self.endpoint
        scheme = "http" if self.insecure else "https"
        return f"{scheme}://{self.endpoint}"


class BackupConfig(BaseModel):
    """Main configuration class."""
    model_config = ConfigDict(extra="forbid")

    client: ClientConfig
    store: StoreConfig
    daemon: bool = False
    interval_hours: float = 24.0
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @field_validator('interval_hours')
    @classmethod
    def validate_interval(cls, v):
        if v <= 0:
            raise ValueError('interval_hours must be positive')
        return v

    @property
    def interval_seconds(self) -> float:
        return self.interval_hours * 3600

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "BackupConfig":
        """Load configuration from a YAML (or JSON) file, ignoring the environment."""
        return load_config(config_path, environ={}, require_file=True)

    def to_yaml(self, config_path: Union[str, Path]) -> None:
        """Save configuration to file, as JSON for ``.json`` paths and YAML otherwise."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json", exclude_none=True)
        with open(config_path, 'w', encoding='utf-8') as f:
            if config_path.suffix.lower() == '.json':
                json.dump(data, f, indent=2)
                f.write('\n')
            else:
                yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)


# Environment variable -> (section, key)
ENV_VARS = {
    f"{ENV_PREFIX}_CLIENT_TOKEN": ("client", "token"),
    f"{ENV_PREFIX}_CLIENT_TIMEOUT": ("client", "timeout"),
    f"{ENV_PREFIX}_STORE_BUCKET": ("store", "bucket"),
    f"{ENV_PREFIX}_STORE_ENDPOINT": ("store", "endpoint"),
    f"{ENV_PREFIX}_STORE_REGION": ("store", "region"),
    f"{ENV_PREFIX}_STORE_ACCESS_KEY": ("store", "access_key"),
    f"{ENV_PREFIX}_STORE_SECRET_KEY": ("store", "secret_key"),
    f"{ENV_PREFIX}_STORE_INSECURE": ("store", "insecure"),
    f"{ENV_PREFIX}_DAEMON": (None, "daemon"),
}


def read_config_file(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML or JSON configuration file into a plain dictionary."""
    config_path = Path(config_path)
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"reading configuration file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"parsing configuration file {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"configuration file {config_path} must contain a mapping")
    for section in ("client", "store"):
        if section in data and not isinstance(data[section], dict):
            raise ConfigError(f"configuration file {config_path}: section '{section}' must be a mapping")
    return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect configuration values from TODOISTBACKUP_* environment variables."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for name, (section, key) in ENV_VARS.items():
        value = environ.get(name)
        if value is None or value == "":
            continue
        if section is None:
            overrides[key] = value
        else:
            overrides.setdefault(section, {})[key] = value
    return overrides


def merge_config_layers(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge configuration layers, later layers winning.

    Nested sections are merged key by key and ``None`` values never
    override a lower layer. The inputs are left untouched.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            if value is None:
                continue
            if isinstance(value, Mapping):
                current = merged.get(key)
                updates = {k: v for k, v in value.items() if v is not None}
                if isinstance(current, Mapping):
                    merged[key] = {**current, **updates}
                elif current is None or updates:
                    merged[key] = updates
            else:
                merged[key] = value
    return merged


def build_config(data: Mapping[str, Any]) -> BackupConfig:
    """Validate merged configuration data."""
    try:
        return BackupConfig(**data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"invalid configuration: {problems}") from e


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    require_file: bool = False,
) -> BackupConfig:
    """Load configuration from file, environment and explicit overrides.

    Args:
        config_path: Configuration file; skipped when missing unless
            ``require_file`` is set
        overrides: Values from the command line, highest precedence
        environ: Environment mapping (defaults to ``os.environ``)
        require_file: Fail when ``config_path`` does not exist

    Returns:
        Validated configuration
    """
    file_data: Dict[str, Any] = {}
    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            file_data = read_config_file(config_path)
        elif require_file:
            raise ConfigError(f"Configuration file not found: {config_path}")

    data = merge_config_layers(file_data, env_overrides(environ), overrides)
    return build_config(data)

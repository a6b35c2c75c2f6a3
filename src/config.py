"""Environment configuration management.

Configuration is loaded from a single YAML file:

    name: controller
    uuid: 6f0c2a6e-8e5b-4b8e-9a5c-1d2e3f4a5b6c
    type: lxd
    cloud:
      endpoint: https://127.0.0.1:8443
      client-cert: client.crt
      client-key: client.key
      server-cert: server.crt

The top-level keys become an EnvironConfig snapshot; the cloud section is
turned into a CloudSpec by provider.cloudspec.

Resolution order for the config file:
1. Explicit path (--config)
2. $LXD_ENV_CONFIG environment variable
3. ~/.config/lxd-env/environ.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml

from common import ProviderError

PROVIDER_TYPE = 'lxd'

DEFAULT_CONFIG_PATH = Path.home() / '.config' / 'lxd-env' / 'environ.yaml'

_NAME_RE = re.compile(r'^[a-z0-9]+(-[a-z0-9]+)*$')
_UUID_RE = re.compile(r'^[0-9a-fA-F-]+$')

# Keys consumed by EnvironConfig itself; everything else lands in attrs
_RESERVED_KEYS = ('name', 'uuid', 'type', 'cloud')


class ConfigError(ProviderError):
    """Invalid or unparseable configuration."""


@dataclass(frozen=True)
class EnvironConfig:
    """Immutable configuration snapshot for one environment.

    Attributes:
        name: Environment display name (lowercase, digits, dashes)
        uuid: Environment UUID
        type: Provider type, always 'lxd'
        attrs: Extra attributes passed through untouched (read-only)
    """
    name: str
    uuid: str
    type: str = PROVIDER_TYPE
    attrs: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.attrs, MappingProxyType):
            object.__setattr__(self, 'attrs', MappingProxyType(dict(self.attrs)))

    def get(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)

    def to_dict(self) -> dict:
        d = {'name': self.name, 'uuid': self.uuid, 'type': self.type}
        d.update(self.attrs)
        return d


def new_valid_config(data: Mapping[str, Any]) -> EnvironConfig:
    """Validate a raw config mapping and build a snapshot.

    Raises:
        ConfigError: If a required key is missing or malformed
    """
    if not isinstance(data, Mapping):
        raise ConfigError(f"config must be a mapping, got {type(data).__name__}")

    name = data.get('name')
    if not name or not isinstance(name, str):
        raise ConfigError("config: 'name' is required")
    if not _NAME_RE.match(name):
        raise ConfigError(f"config: invalid environment name {name!r}")

    uuid = data.get('uuid')
    if not uuid or not isinstance(uuid, str):
        raise ConfigError("config: 'uuid' is required")
    if not _UUID_RE.match(uuid):
        raise ConfigError(f"config: invalid environment uuid {uuid!r}")

    provider_type = data.get('type', PROVIDER_TYPE)
    if provider_type != PROVIDER_TYPE:
        raise ConfigError(f"config: unsupported provider type {provider_type!r}")

    attrs = {k: v for k, v in data.items() if k not in _RESERVED_KEYS}
    return EnvironConfig(name=name, uuid=uuid, type=provider_type, attrs=attrs)


def validate_change(old: EnvironConfig, new: EnvironConfig) -> None:
    """Reject changes to attributes fixed at environment creation."""
    if old.name != new.name:
        raise ConfigError(f"cannot change name from {old.name!r} to {new.name!r}")
    if old.uuid != new.uuid:
        raise ConfigError(f"cannot change uuid from {old.uuid!r} to {new.uuid!r}")


def get_config_path(explicit: Optional[Path] = None) -> Path:
    """Discover the environment config file.

    Raises:
        ConfigError: If $LXD_ENV_CONFIG points at a missing file
    """
    if explicit is not None:
        return Path(explicit).expanduser()

    if env_path := os.environ.get('LXD_ENV_CONFIG'):
        path = Path(env_path).expanduser()
        if not path.exists():
            raise ConfigError(f"LXD_ENV_CONFIG={env_path} does not exist")
        return path

    return DEFAULT_CONFIG_PATH


def load_yaml(path: Path) -> dict:
    """Parse a YAML file and return its top-level mapping."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"parsing {path}", e) from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    return data


def load_environ_config(path: Path) -> EnvironConfig:
    """Load and validate the environment section of a config file."""
    return new_valid_config(load_yaml(path))

"""YAML configuration file support.

Values from the file are defaults only; command line flags override them.
Passwords are never read from the file.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join('~', '.config', 'certscope', 'config.yaml')


@dataclass(frozen=True)
class Settings:
    ca_bundle: Optional[str] = None
    expiry_warning_days: int = 30
    min_rsa_bits: int = 2048
    timeout: float = 10
    format: str = ''

    def override(self, **values) -> 'Settings':
        """Return a copy with every non-None value applied"""
        return replace(self, **{k: v for k, v in values.items() if v is not None})


FIELD_TYPES = {
    'ca_bundle': (str,),
    'expiry_warning_days': (int,),
    'min_rsa_bits': (int,),
    'timeout': (int, float),
    'format': (str,),
}


def load_config(path: Optional[str] = None) -> Settings:
    """Read settings from ``path``, or from the default location if it exists"""
    explicit = path is not None
    path = os.path.expanduser(path or DEFAULT_CONFIG_PATH)
    if not explicit and not os.path.exists(path):
        return Settings()

    try:
        with open(path, 'r') as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"error loading config {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"config {path} must be a mapping")

    values = {}
    known = {f.name for f in fields(Settings)}
    for key, value in raw.items():
        if key not in known:
            logger.warning("ignoring unknown config key '%s' in %s", key, path)
            continue
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, FIELD_TYPES[key]):
            raise ConfigError(f"config key '{key}' in {path} has invalid value {value!r}")
        values[key] = value

    if values.get('ca_bundle'):
        values['ca_bundle'] = os.path.expanduser(values['ca_bundle'])
    logger.debug("loaded config from %s", path)
    return Settings(**values)

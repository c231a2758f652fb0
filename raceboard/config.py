"""Server configuration.

Defaults, overridden by an optional ``config.yml``::

    server:
      port: 8080
      dataDir: data
      raceData: race_data.json

and finally by the ``PORT``, ``DATA_DIR``, ``RACE_DATA_FILE`` and
``LOG_LEVEL`` environment variables.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import MalformedError

DEFAULT_CONFIG_FILE = "config.yml"

_YAML_KEYS = {
    "port": "port",
    "dataDir": "data_dir",
    "raceData": "race_data",
    "logLevel": "log_level",
}

_ENV_KEYS = {
    "PORT": "port",
    "DATA_DIR": "data_dir",
    "RACE_DATA_FILE": "race_data",
    "LOG_LEVEL": "log_level",
}


def default_config() -> Dict[str, Any]:
    return {
        "port": 8080,
        "data_dir": "data",
        "race_data": "race_data.json",
        "log_level": "INFO",
    }


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise MalformedError(f"config file {path} is not valid YAML") from exc
    server = loaded.get("server") if isinstance(loaded, dict) else None
    if server is None:
        return {}
    if not isinstance(server, dict):
        raise MalformedError(f"config file {path}: 'server' must be a mapping")
    return {_YAML_KEYS[k]: v for k, v in server.items() if k in _YAML_KEYS and v is not None}


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Return the merged configuration dict.

    ``path`` defaults to ``$RACEBOARD_CONFIG`` or ``config.yml``; a missing
    file is not an error.
    """
    config = default_config()
    cfg_path = Path(path or os.environ.get("RACEBOARD_CONFIG") or DEFAULT_CONFIG_FILE)
    if cfg_path.is_file():
        config.update(_read_yaml(cfg_path))
    for env_key, key in _ENV_KEYS.items():
        val = os.environ.get(env_key)
        if val:
            config[key] = val
    try:
        config["port"] = int(config["port"])
    except (TypeError, ValueError) as exc:
        raise MalformedError(f"port {config['port']!r} is not a number") from exc
    config["data_dir"] = str(config["data_dir"])
    config["race_data"] = str(config["race_data"])
    config["log_level"] = str(config["log_level"]).upper()
    return config


__all__ = ["DEFAULT_CONFIG_FILE", "default_config", "load_config"]

#!/usr/bin/env python3

import json
import os
import tomllib
from typing import Any, Dict, Optional


def _load_jsonfile_data(jsonfile_path: Optional[str]) -> Optional[Dict[str, Any]]:
    """Load JSON file data once for ``jsonfile,`` placeholders.

    Args:
        jsonfile_path: Path to the JSON file.

    Returns:
        Optional[Dict[str, Any]]: Parsed JSON dictionary, or ``None`` when the
            file does not exist, parse fails, or JSON root is not an object.
    """
    if not jsonfile_path or not os.path.exists(jsonfile_path):
        return None

    try:
        with open(jsonfile_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, FileNotFoundError):
        return None

    return data if isinstance(data, dict) else None


def _lookup_dotted(data: Optional[Dict[str, Any]], key: str) -> Any:
    value: Any = data
    if not isinstance(value, dict):
        return None
    for key_part in key.split("."):
        if isinstance(value, dict) and key_part in value:
            value = value[key_part]
        else:
            return None
    return value


def _replace_values(data: Any, jsonfile_data: Optional[Dict[str, Any]] = None) -> Any:
    """Recursively resolve special placeholders in config values.

    Supported placeholder prefixes:
    - ``env,NAME``
    - ``jsonfile,key`` (supports dotted key path, falls back to the
      environment variable named ``key``)

    Unresolved placeholders are returned unchanged.

    Args:
        data: Config value to resolve.
        jsonfile_data: Preloaded JSON data for ``jsonfile`` lookups.

    Returns:
        Any: Resolved value.
    """
    if isinstance(data, dict):
        return {k: _replace_values(v, jsonfile_data) for k, v in data.items()}
    if isinstance(data, list):
        return [_replace_values(item, jsonfile_data) for item in data]
    if not isinstance(data, str):
        return data

    if data.startswith("env,"):
        env_value = os.getenv(data.split(",", 1)[1])
        return env_value if env_value is not None else data

    if data.startswith("jsonfile,"):
        # Split once, keys may contain commas.
        key = data.split(",", 1)[1]
        value = _lookup_dotted(jsonfile_data, key)
        if value is not None:
            return value
        env_value = os.getenv(key)
        if env_value is not None:
            return env_value

    return data


def load_config_by_file(path: str, jsonfile: Optional[str] = None) -> Dict[str, Any]:
    """Load config from TOML/JSON and resolve supported placeholders.

    Args:
        path: Config file path. ``.toml`` files are read as TOML, anything else
            as JSON.
        jsonfile: JSON file path for ``jsonfile,`` lookups.

    Returns:
        Dict[str, Any]: Loaded and resolved config.
    """
    if path.endswith(".toml"):
        with open(path, "rb") as f:
            config = tomllib.load(f)
    else:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)

    # Load the side file once rather than per placeholder.
    jsonfile_data = _load_jsonfile_data(jsonfile)
    return _replace_values(config, jsonfile_data)

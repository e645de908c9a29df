"""
Configuration for wavpitch.

YAML files are read with PyYAML, ``${ENV_VAR}`` references are expanded,
the result is laid over get_default_config() and the numeric scan settings
are checked against CONFIG_SCHEMA.
"""

import copy
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from wavpitch.utils.errors import ConfigurationError


# Dot-path -> rules; "min" is inclusive unless "exclusive" is set
CONFIG_SCHEMA: Dict[str, Dict[str, Any]] = {
    "scanner.scan_window": {"type": (int, float), "min": 0.0, "exclusive": True},
    "scanner.num_scans": {"type": int, "min": 1},
    "scanner.min_amplitude": {"type": (int, float), "min": 0.0},
    "scanner.min_frequency": {"type": (int, float), "min": 0.0},
    "scanner.frequency_multiplier": {"type": (int, float), "min": 0.0, "exclusive": True},
    "scanner.fill_gaps": {"type": bool},
    "scanner.multi_threaded": {"type": bool},
    "snippets.min_amplitude": {"type": (int, float), "min": 0.0},
    "snippets.min_silence_duration": {"type": (int, float)},
    "snippets.min_snippet_duration": {"type": (int, float)},
    "cache.max_size": {"type": int, "min": 1},
    "performance.max_workers": {"type": int, "min": 1},
}

CONFIG_SEARCH_PATHS: List[Path] = [
    Path("config/config.yaml"),
    Path("config.yaml"),
    Path(__file__).resolve().parent.parent.parent / "config" / "config.yaml",
]

_ENV_VAR = re.compile(r'\$\{([^}]+)\}')


def expand_env(value: Any) -> Any:
    """
    Replace ``${NAME}`` with the environment variable NAME throughout
    nested dicts, lists and strings. Unset variables are left as written.
    """
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    if isinstance(value, str):
        return _ENV_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    return value


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _type_name(expected: Any) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


class ConfigManager:
    """
    Nested configuration addressed by dot paths such as "scanner.num_scans".
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        self._config: Dict[str, Any] = config_dict if config_dict is not None else {}

    @classmethod
    def from_file(cls, file_path: Path) -> "ConfigManager":
        """
        Load a YAML file and expand environment variables in it.

        Raises:
            ConfigurationError: Missing file, bad YAML, or a non-mapping root
        """
        file_path = Path(file_path)
        try:
            text = file_path.read_text(encoding='utf-8')
        except FileNotFoundError:
            raise ConfigurationError(f"No config file at {file_path}", config_key=str(file_path))

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"{file_path} is not valid YAML: {e}", config_key=str(file_path))

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{file_path} must contain a mapping, not {type(data).__name__}",
                config_key=str(file_path),
            )
        return cls(expand_env(data))

    def get(self, key: str, default: Any = None, required: bool = False) -> Any:
        """
        Value at dot path ``key``.

        Raises:
            ConfigurationError: ``required`` is set and the key is absent
        """
        node: Any = self._config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                if required:
                    raise ConfigurationError(f"Missing required setting {key}", config_key=key)
                return default
            node = node[part]
        return node

    def get_section(self, key: str) -> Dict[str, Any]:
        """The mapping at ``key``, or an empty dict."""
        section = self.get(key)
        return section if isinstance(section, dict) else {}

    def set(self, key: str, value: Any) -> None:
        *parents, leaf = key.split('.')
        node = self._config
        for part in parents:
            if not isinstance(node.get(part), dict):
                node[part] = {}
            node = node[part]
        node[leaf] = value

    def merge_defaults(self, defaults: Dict[str, Any]) -> None:
        """Fill every key missing here from ``defaults``."""
        self._config = _deep_merge(copy.deepcopy(defaults), self._config)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    def validate(self, schema: Dict[str, Dict[str, Any]]) -> None:
        """
        Check values against ``schema`` (see CONFIG_SCHEMA).

        Rules: "type" (a type or tuple of types; bool is only accepted where
        bool itself is listed), "min", "exclusive" and "required". Absent or
        null settings are skipped unless required.

        Raises:
            ConfigurationError: Naming the first offending key
        """
        for key, rules in schema.items():
            value = self.get(key)
            if value is None:
                if rules.get("required"):
                    raise ConfigurationError(f"Missing required setting {key}", config_key=key)
                continue
            self._check(key, value, rules)

    @staticmethod
    def _check(key: str, value: Any, rules: Dict[str, Any]) -> None:
        expected = rules.get("type")
        if expected is not None:
            wrong_bool = isinstance(value, bool) and expected is not bool
            if wrong_bool or not isinstance(value, expected):
                raise ConfigurationError(
                    f"{key} must be {_type_name(expected)}, got {type(value).__name__}",
                    config_key=key,
                )

        minimum = rules.get("min")
        if minimum is None:
            return
        if rules.get("exclusive") and value <= minimum:
            raise ConfigurationError(f"{key} must be > {minimum}, got {value}", config_key=key)
        if value < minimum:
            raise ConfigurationError(f"{key} must be >= {minimum}, got {value}", config_key=key)


def find_config_file() -> Optional[Path]:
    """First existing file in CONFIG_SEARCH_PATHS."""
    for path in CONFIG_SEARCH_PATHS:
        if path.is_file():
            return path
    return None


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate the configuration.

    Args:
        config_path: YAML file to read; None searches CONFIG_SEARCH_PATHS and
            falls back to the defaults alone

    Raises:
        ConfigurationError: An explicit path is unreadable or a value is invalid
    """
    path = Path(config_path) if config_path else find_config_file()

    if path is None:
        manager = ConfigManager(get_default_config())
    else:
        manager = ConfigManager.from_file(path)
        manager.merge_defaults(get_default_config())

    manager.validate(CONFIG_SCHEMA)
    return manager.to_dict()


def get_default_config() -> Dict[str, Any]:
    """Built-in defaults; config files only need to list what they change."""
    return {
        "audio": {
            "max_file_size": 500 * 1024 * 1024,
            "max_duration": 600.0,
            "target_sample_rate": None,  # keep each file's rate
        },
        "scanner": {
            "scan_window": 0.2,
            "num_scans": 8,
            "min_amplitude": 0.025,
            "min_frequency": 0.0,
            "max_frequency": None,  # unbounded
            "frequency_multiplier": 1.0,
            "fill_gaps": False,
            "multi_threaded": False,
        },
        "snippets": {
            "enabled": False,
            "min_amplitude": 0.05,
            "min_silence_duration": 0.05,
            "min_snippet_duration": 0.1,
        },
        "cache": {
            "enabled": True,
            "max_size": 256,
            "ttl": 3600,
        },
        "output": {
            "stats_suffix": ".fstats",
        },
        "logging": {
            "level": "INFO",
            "format": "text",
            "file": None,
        },
        "performance": {
            "max_workers": 4,
        },
    }

"""
Configuration management and loading.

Handles relay settings from a YAML file and secrets from the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from ..core.quota import DEFAULT_CHARACTER_LIMIT, DEFAULT_WARNING_RATIO
from ..providers.gateway import DEFAULT_PRIMARY_URL, DEFAULT_SECONDARY_URL, DEFAULT_TIMEOUT_SECONDS
from ..storage.repository import DEFAULT_DB_PATH
from ..storage.settings import DEFAULT_SETTINGS_PATH


@dataclass(frozen=True)
class LanguageConfig:
    """Target languages of the relay."""
    home: str = "JA"
    complementary: str = "EN"

    def __post_init__(self):
        """Validate the two languages are set and distinct."""
        if not self.home or not self.complementary:
            raise ValueError("home and complementary languages are required")
        if self.home.upper() == self.complementary.upper():
            raise ValueError("home and complementary languages must differ")


@dataclass(frozen=True)
class QuotaConfig:
    """Monthly character budget of the primary provider."""
    monthly_limit: int = DEFAULT_CHARACTER_LIMIT
    warning_ratio: float = DEFAULT_WARNING_RATIO

    def __post_init__(self):
        """Validate quota values."""
        if self.monthly_limit <= 0:
            raise ValueError("monthly_limit must be > 0")
        if not 0 <= self.warning_ratio <= 1:
            raise ValueError("warning_ratio must be between 0 and 1")


@dataclass(frozen=True)
class ProviderConfig:
    """Provider endpoints and call bounds."""
    primary_url: str = DEFAULT_PRIMARY_URL
    secondary_url: str = DEFAULT_SECONDARY_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self):
        """Validate the timeout is positive."""
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")


@dataclass(frozen=True)
class StorageConfig:
    """Where state is persisted."""
    settings_path: str = DEFAULT_SETTINGS_PATH
    db_path: str = DEFAULT_DB_PATH


@dataclass(frozen=True)
class RelayConfig:
    """Complete relay configuration."""
    languages: LanguageConfig = field(default_factory=LanguageConfig)
    labels: Dict[str, str] = field(default_factory=lambda: {"JA": "🇯🇵", "EN": "🇺🇸"})
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    ignored_prefixes: Tuple[str, ...] = ("v!", "m!")
    discord_token: Optional[str] = None
    deepl_api_key: Optional[str] = None

    def label_for(self, language: str) -> str:
        """Display label for a language, falling back to a bracketed code."""
        return self.labels.get(language.upper(), f"[{language.upper()}]")


_SECTION_KEYS = {
    "languages": {"home", "complementary"},
    "quota": {"monthly_limit", "warning_ratio"},
    "providers": {"primary_url", "secondary_url", "timeout_seconds"},
    "storage": {"settings_path", "db_path"},
    "relay": {"ignored_prefixes"},
}


def load_relay_config(path: Optional[str] = None, env_file: Optional[str] = None) -> RelayConfig:
    """Load and validate relay configuration.

    Without a path the defaults are used. Secrets are always read from the
    environment (DISCORD_BOT_TOKEN, DEEPL_API_KEY, DEEPL_API_URL), after
    loading a .env file if present.

    Args:
        path: Optional path to YAML configuration file
        env_file: Optional .env file to load before reading the environment

    Returns:
        Validated RelayConfig object

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    load_dotenv(dotenv_path=env_file)

    raw_config: Dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Relay config file not found: {path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                raw_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

        if not isinstance(raw_config, dict):
            raise ValueError("Configuration must be a mapping")

    allowed_top_keys = set(_SECTION_KEYS) | {"labels"}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {name: _section(raw_config, name) for name in _SECTION_KEYS}

    languages = LanguageConfig(**{
        key: str(value).upper() for key, value in sections["languages"].items()
    })

    quota_data = sections["quota"]
    quota = QuotaConfig(
        monthly_limit=_as_int(quota_data.get("monthly_limit", DEFAULT_CHARACTER_LIMIT), "quota.monthly_limit"),
        warning_ratio=_as_float(quota_data.get("warning_ratio", DEFAULT_WARNING_RATIO), "quota.warning_ratio")
    )

    provider_data = dict(sections["providers"])
    if os.getenv("DEEPL_API_URL"):
        provider_data["primary_url"] = os.environ["DEEPL_API_URL"]
    if "timeout_seconds" in provider_data:
        provider_data["timeout_seconds"] = _as_float(provider_data["timeout_seconds"], "providers.timeout_seconds")
    providers = ProviderConfig(**provider_data)

    storage = StorageConfig(**{key: str(value) for key, value in sections["storage"].items()})

    prefixes = sections["relay"].get("ignored_prefixes", ["v!", "m!"])
    if not isinstance(prefixes, list) or not all(isinstance(p, str) and p for p in prefixes):
        raise ValueError("'relay.ignored_prefixes' must be a list of non-empty strings")

    labels = RelayConfig().labels
    labels_data = raw_config.get("labels", {}) or {}
    if not isinstance(labels_data, dict):
        raise ValueError("'labels' must be a dictionary")
    labels = {**labels, **{str(code).upper(): str(label) for code, label in labels_data.items()}}

    return RelayConfig(
        languages=languages,
        labels=labels,
        quota=quota,
        providers=providers,
        storage=storage,
        ignored_prefixes=tuple(prefixes),
        discord_token=os.getenv("DISCORD_BOT_TOKEN") or None,
        deepl_api_key=os.getenv("DEEPL_API_KEY") or None
    )


def _section(raw_config: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Fetch a config section and reject keys it doesn't know."""
    data = raw_config.get(name, {}) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - _SECTION_KEYS[name]
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _as_int(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{path}' must be an integer")
    return value


def _as_float(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)

"""
Unit tests for configuration loading and validation.

Tests strict validation of the YAML file and secrets read from the environment.
"""

import os
import tempfile

import pytest
import yaml

from translation_relay.config.loader import (
    LanguageConfig,
    QuotaConfig,
    RelayConfig,
    load_relay_config
)
from translation_relay.providers.gateway import DEFAULT_PRIMARY_URL


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep secrets from the developer's shell out of the tests."""
    for name in ("DISCORD_BOT_TOKEN", "DEEPL_API_KEY", "DEEPL_API_URL"):
        monkeypatch.delenv(name, raising=False)


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.env_file = os.path.join(self.temp_dir, ".env")
        open(self.env_file, "w").close()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "relay.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f, allow_unicode=True)
        return config_path

    def _load(self, config_data=None):
        path = self._write_config(config_data) if config_data is not None else None
        return load_relay_config(path, env_file=self.env_file)

    def test_defaults_without_file(self):
        """Test defaults apply when no file is given."""
        config = self._load()

        assert config.languages.home == "JA"
        assert config.languages.complementary == "EN"
        assert config.quota.monthly_limit == 500000
        assert config.quota.warning_ratio == 0.10
        assert config.providers.primary_url == DEFAULT_PRIMARY_URL
        assert config.ignored_prefixes == ("v!", "m!")
        assert config.deepl_api_key is None
        assert config.discord_token is None

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config = self._load({
            "languages": {"home": "de", "complementary": "en"},
            "labels": {"de": "🇩🇪"},
            "quota": {"monthly_limit": 1000000, "warning_ratio": 0.2},
            "providers": {"timeout_seconds": 5},
            "storage": {"settings_path": "/tmp/s.json", "db_path": "/tmp/r.db"},
            "relay": {"ignored_prefixes": ["!"]},
        })

        assert config.languages == LanguageConfig(home="DE", complementary="EN")
        assert config.label_for("de") == "🇩🇪"
        assert config.label_for("EN") == "🇺🇸"
        assert config.label_for("fr") == "[FR]"
        assert config.quota == QuotaConfig(monthly_limit=1000000, warning_ratio=0.2)
        assert config.providers.timeout_seconds == 5.0
        assert config.storage.db_path == "/tmp/r.db"
        assert config.ignored_prefixes == ("!",)

    def test_empty_file_uses_defaults(self):
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, "w").close()

        assert load_relay_config(path, env_file=self.env_file) == RelayConfig()

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_relay_config(os.path.join(self.temp_dir, "nope.yaml"), env_file=self.env_file)

    def test_invalid_yaml_raises(self):
        path = os.path.join(self.temp_dir, "broken.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write("quota: [unclosed")

        with pytest.raises(yaml.YAMLError):
            load_relay_config(path, env_file=self.env_file)

    def test_unknown_top_level_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            self._load({"budget": {"daily": 1}})

    def test_unknown_section_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown keys in quota"):
            self._load({"quota": {"daily_limit": 1}})

    @pytest.mark.parametrize("quota, message", [
        ({"monthly_limit": 0}, "monthly_limit must be > 0"),
        ({"monthly_limit": "lots"}, "must be an integer"),
        ({"monthly_limit": True}, "must be an integer"),
        ({"warning_ratio": 1.5}, "warning_ratio must be between 0 and 1"),
    ])
    def test_invalid_quota_values(self, quota, message):
        with pytest.raises(ValueError, match=message):
            self._load({"quota": quota})

    def test_same_languages_rejected(self):
        with pytest.raises(ValueError, match="must differ"):
            self._load({"languages": {"home": "en", "complementary": "EN"}})

    def test_invalid_prefixes_rejected(self):
        with pytest.raises(ValueError, match="ignored_prefixes"):
            self._load({"relay": {"ignored_prefixes": "v!"}})

    def test_secrets_from_environment(self, monkeypatch):
        """Test tokens and the DeepL URL come from the environment."""
        monkeypatch.setenv("DISCORD_BOT_TOKEN", "bot-token")
        monkeypatch.setenv("DEEPL_API_KEY", "deepl-key:fx")
        monkeypatch.setenv("DEEPL_API_URL", "https://api.deepl.com/v2/translate")

        config = self._load({"providers": {"primary_url": "https://ignored.example/v2/translate"}})

        assert config.discord_token == "bot-token"
        assert config.deepl_api_key == "deepl-key:fx"
        assert config.providers.primary_url == "https://api.deepl.com/v2/translate"

    def test_secrets_from_env_file(self):
        """Test a .env file is loaded before reading secrets."""
        with open(self.env_file, "w", encoding="utf-8") as f:
            f.write("DEEPL_API_KEY=from-dotenv\n")

        try:
            config = self._load()
        finally:
            os.environ.pop("DEEPL_API_KEY", None)

        assert config.deepl_api_key == "from-dotenv"

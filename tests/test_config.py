"""
Test Configuration Module
========================

Unit tests for configuration loading and validation.
"""

import pytest
from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import (
    Config, LLMConfig, ReplyConfig, StorageConfig, TransportConfig, load_config, save_config
)
from core.exceptions import ConfigError

ENV_VARS = (
    "AUTO_REPLY_LLM_PROVIDER",
    "AUTO_REPLY_LLM_MODEL",
    "AUTO_REPLY_LLM_API_KEY",
    "AUTO_REPLY_REPLY_DEFAULT_TIMEZONE",
    "AUTO_REPLY_TRANSPORT_POLL_INTERVAL",
    "AUTO_REPLY_STORAGE_MESSAGE_TTL_DAYS",
    "GEMINI_API_KEY",
    "OPENROUTER_API_KEY",
    "GROQ_API_KEY",
)


@pytest.fixture
def config_env(tmp_path, monkeypatch):
    """Point config and data dirs at tmp_path with a clean environment."""
    for name in ENV_VARS:
        # setenv first so monkeypatch restores values set by .env loading
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setenv("AUTO_REPLY_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("AUTO_REPLY_DATA_DIR", str(tmp_path / "data"))
    (tmp_path / "config").mkdir()
    return tmp_path / "config"


class TestLLMConfig:
    """Tests for LLMConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = LLMConfig()
        assert config.provider == "gemini"
        assert config.temperature == 0.7
        assert config.request_timeout == 7.0

    def test_validation_invalid_provider(self):
        with pytest.raises(ConfigError):
            LLMConfig(provider="ollama").validate()

    def test_validation_invalid_temperature(self):
        """Test invalid temperature raises error."""
        with pytest.raises(ConfigError):
            LLMConfig(temperature=3.0).validate()

    def test_resolved_api_base(self):
        assert LLMConfig(provider="groq").resolved_api_base() == "https://api.groq.com/openai/v1"
        assert LLMConfig(api_base="http://localhost:8080/").resolved_api_base() == "http://localhost:8080"


class TestReplyConfig:
    """Tests for ReplyConfig."""

    def test_default_values(self):
        config = ReplyConfig()
        assert config.generate_timeout == 8.0
        assert config.default_timezone == "UTC"
        assert config.fallback_text

    def test_unknown_timezone(self):
        with pytest.raises(ConfigError):
            ReplyConfig(default_timezone="Nowhere/Special").validate()



class TestStorageConfig:
    """Tests for StorageConfig."""

    def test_default_retention(self):
        config = StorageConfig()
        assert config.message_ttl_days == 30
        config.validate()

    def test_invalid_values(self):
        with pytest.raises(ConfigError):
            StorageConfig(message_ttl_days=0).validate()
        with pytest.raises(ConfigError):
            StorageConfig(cleanup_interval=5).validate()


class TestConfig:
    """Tests for main Config class."""

    def test_default_values_validate(self):
        config = Config()
        config.validate()
        assert config.transport.kind == "termux"

    def test_request_timeout_must_be_shorter(self):
        config = Config()
        config.llm.request_timeout = 10
        with pytest.raises(ConfigError):
            config.validate()

    def test_invalid_transport(self):
        with pytest.raises(ConfigError):
            TransportConfig(kind="carrier-pigeon").validate()

    def test_to_dict(self):
        d = Config().to_dict()
        assert set(d) >= {"app_name", "llm", "reply", "transport", "storage"}


class TestLoadConfig:
    """Tests for YAML loading and environment overrides."""

    def test_defaults_without_file(self, config_env):
        config = load_config()
        assert config.llm.provider == "gemini"
        assert config.database_path.endswith("auto_reply.db")

    def test_yaml_values(self, config_env):
        (config_env / "config.yaml").write_text(
            "llm:\n"
            "  provider: groq\n"
            "  model: llama-3.1-8b-instant\n"
            "reply:\n"
            "  default_timezone: Asia/Kolkata\n"
            "  unknown_key: ignored\n"
        )
        config = load_config()
        assert config.llm.provider == "groq"
        assert config.llm.model == "llama-3.1-8b-instant"
        assert config.reply.default_timezone == "Asia/Kolkata"

    def test_env_overrides_yaml(self, config_env, monkeypatch):
        (config_env / "config.yaml").write_text("llm:\n  model: from-yaml\n")
        monkeypatch.setenv("AUTO_REPLY_LLM_MODEL", "from-env")
        monkeypatch.setenv("AUTO_REPLY_TRANSPORT_POLL_INTERVAL", "9")
        config = load_config()
        assert config.llm.model == "from-env"
        assert config.transport.poll_interval == 9

    def test_retention_from_yaml_and_env(self, config_env, monkeypatch):
        (config_env / "config.yaml").write_text("storage:\n  message_ttl_days: 14\n")
        assert load_config().storage.message_ttl_days == 14

        monkeypatch.setenv("AUTO_REPLY_STORAGE_MESSAGE_TTL_DAYS", "3")
        assert load_config().storage.message_ttl_days == 3

    def test_provider_key_from_env_file(self, config_env):
        (config_env / ".env").write_text("GEMINI_API_KEY=from-dotenv\n")
        assert load_config().llm.api_key == "from-dotenv"

    def test_invalid_env_value(self, config_env, monkeypatch):
        monkeypatch.setenv("AUTO_REPLY_TRANSPORT_POLL_INTERVAL", "often")
        with pytest.raises(ConfigError):
            load_config()

    def test_invalid_yaml(self, config_env):
        (config_env / "config.yaml").write_text("llm: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config()

    def test_save_config_drops_api_key(self, config_env):
        config = load_config()
        config.llm.api_key = "secret"
        config.llm.model = "gemini-1.5-pro"
        save_config(config)

        text = (config_env / "config.yaml").read_text()
        assert "secret" not in text
        assert load_config().llm.model == "gemini-1.5-pro"

# tests/unit/test_config.py
"""
Unit tests for ConfigManager
"""
from decimal import Decimal

import pytest

from config.config_manager import ConfigManager, ConfigType
from utils.errors import ConfigurationError

API_KEY_VARS = ("BIRDEYE_API_KEY", "HELIUS_API_KEY", "CODEX_API_KEY")


@pytest.fixture
def clean_env(monkeypatch):
    for name in API_KEY_VARS + ("REDIS_URL", "LOG_LEVEL", "MAX_RETRIES"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestConfigManager:
    """Test cases for ConfigManager"""

    @pytest.mark.asyncio
    async def test_defaults(self, clean_env):
        config = ConfigManager()
        await config.initialize()

        assert config.get_api_config().max_retries == 3
        assert config.get_cache_config().cache_ttls["processed"] == 300
        assert config.get_scoring_config().high_value_holder_floor_usd == Decimal("5")
        assert config.get_trust_config().decay_rate == 0.95

    @pytest.mark.asyncio
    async def test_yaml_overrides_merge_with_defaults(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("cache:\n  cache_ttls:\n    dex: 5\nscoring:\n  aggregation_deadline: 12.5\n")

        config = ConfigManager(str(path))
        await config.initialize()

        ttls = config.get_cache_config().cache_ttls
        assert ttls["dex"] == 5
        assert ttls["holders"] == 3600
        assert config.get("scoring.aggregation_deadline") == 12.5

    @pytest.mark.asyncio
    async def test_environment_wins_over_file(self, clean_env, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("api:\n  birdeye_api_key: from-file\n")
        clean_env.setenv("BIRDEYE_API_KEY", "from-env")

        config = ConfigManager(str(path))
        await config.initialize()

        assert config.get("api.birdeye_api_key") == "from-env"
        assert config["birdeye_api_key"] == "from-env"
        assert "birdeye_api_key" in config

    @pytest.mark.asyncio
    async def test_missing_file_uses_defaults(self, clean_env, tmp_path):
        config = ConfigManager(str(tmp_path / "absent.yaml"))
        await config.initialize()

        assert config.get_logging_config().log_level == "INFO"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", [
        "cache:\n  cache_ttls:\n    dex: 0\n",
        "logging:\n  log_level: loud\n",
        "api:\n  max_retries: 0\n",
        "- just\n- a list\n",
        "api: [unclosed\n",
    ])
    async def test_invalid_configuration(self, clean_env, tmp_path, content):
        path = tmp_path / "config.yaml"
        path.write_text(content)

        with pytest.raises(ConfigurationError):
            await ConfigManager(str(path)).initialize()

    @pytest.mark.asyncio
    async def test_missing_api_keys_are_reported(self, clean_env):
        clean_env.setenv("CODEX_API_KEY", "present")
        config = ConfigManager()
        await config.initialize()

        assert config.validate_environment() == ["BIRDEYE_API_KEY", "HELIUS_API_KEY"]

    def test_unknown_keys(self):
        config = ConfigManager()

        assert config.get("nope.key", "fallback") == "fallback"
        assert config.get("no_such_field") is None
        with pytest.raises(KeyError):
            config["no_such_field"]

    def test_uninitialized_sections_default(self):
        assert ConfigManager().get_config(ConfigType.BACKEND).replication_attempts == 3

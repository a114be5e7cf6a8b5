"""Tests for configuration management."""

import os

import pytest
import yaml

from pi_dashboard.core.config import ConfigError, ConfigManager, CredentialStore, coerce_env_value, deep_merge


@pytest.fixture
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("PI_DASHBOARD_") or name in ("TWITTER_BEARER_TOKEN", "OKX_API_KEY"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("ENVIRONMENT", "test")
    return monkeypatch


class TestConfigManager:
    """Test layered configuration loading."""

    @pytest.mark.asyncio
    async def test_defaults_and_overrides(self, config_manager):
        # From config.yaml
        assert config_manager.get('currency.default') == "EUR"
        assert config_manager.get('cache.price.window') == 60
        # From the packaged defaults
        assert config_manager.get('cache.history.window') == 3600
        assert config_manager.get('dashboard.port') == 8080
        assert config_manager.get('missing.key', 'fallback') == 'fallback'

    @pytest.mark.asyncio
    async def test_environment_file_layer(self, temp_dir, clean_env):
        config_dir = temp_dir / "config"
        config_dir.mkdir()
        with open(config_dir / "config.yaml", 'w') as f:
            yaml.dump({'refresh': {'price': 10}}, f)
        with open(config_dir / "test.yaml", 'w') as f:
            yaml.dump({'refresh': {'price': 20}}, f)

        manager = ConfigManager(config_dir=config_dir)
        await manager.initialize()

        assert manager.get('refresh.price') == 20
        assert manager.get('refresh.news') == 300

    @pytest.mark.asyncio
    async def test_env_override(self, temp_dir, clean_env):
        clean_env.setenv("PI_DASHBOARD_CACHE_PRICE_WINDOW", "30")
        clean_env.setenv("PI_DASHBOARD_CLIENTS_OKX_ENABLED", "false")

        manager = ConfigManager(config_dir=temp_dir)
        await manager.initialize()

        assert manager.get('cache.price.window') == 30
        assert manager.get('clients.okx.enabled') is False

    @pytest.mark.asyncio
    async def test_explicit_config_file(self, temp_dir, clean_env):
        extra = temp_dir / "extra.yaml"
        with open(extra, 'w') as f:
            yaml.dump({'history': {'days': 3}}, f)

        manager = ConfigManager(config_dir=temp_dir, config_file=extra)
        await manager.initialize()

        assert manager.get('history.days') == 3

    @pytest.mark.asyncio
    async def test_missing_config_file(self, temp_dir, clean_env):
        manager = ConfigManager(config_dir=temp_dir, config_file=temp_dir / "nope.yaml")

        with pytest.raises(ConfigError, match="Config file not found"):
            await manager.initialize()

    @pytest.mark.asyncio
    async def test_invalid_yaml(self, temp_dir, clean_env):
        with open(temp_dir / "config.yaml", 'w') as f:
            f.write("cache: [unclosed\n")

        manager = ConfigManager(config_dir=temp_dir)

        with pytest.raises(ConfigError, match="Invalid YAML"):
            await manager.initialize()

    def test_get_before_load(self, temp_dir):
        with pytest.raises(ConfigError):
            ConfigManager(config_dir=temp_dir).get('cache')

    @pytest.mark.asyncio
    async def test_section(self, config_manager):
        assert config_manager.section('cache')['news'] == {'window': 120, 'backoff': 900}
        assert config_manager.section('nothing') == {}

        with pytest.raises(ConfigError):
            config_manager.section('currency.default')

    @pytest.mark.asyncio
    async def test_get_all_is_a_copy(self, config_manager):
        snapshot = config_manager.get_all()
        snapshot['cache']['price']['window'] = 1

        assert config_manager.get('cache.price.window') == 60

    @pytest.mark.asyncio
    async def test_set_overrides_value(self, config_manager):
        config_manager.set('clients.okx.timeout', 5)

        assert config_manager.get('clients.okx.timeout') == 5
        assert config_manager.get('clients.okx.enabled') is True


@pytest.mark.parametrize("raw,expected", [
    ("true", True),
    ("False", False),
    ("42", 42),
    ("0.25", 0.25),
    ("PiNetwork", "PiNetwork"),
])
def test_coerce_env_value(raw, expected):
    assert coerce_env_value(raw) == expected


def test_deep_merge_keeps_sibling_keys():
    base = {'cache': {'price': {'window': 900, 'backoff': 14400}}}

    deep_merge(base, {'cache': {'price': {'window': 60}}, 'history': {'days': 3}})

    assert base == {'cache': {'price': {'window': 60, 'backoff': 14400}}, 'history': {'days': 3}}


class TestCredentials:
    """Test credential lookup."""

    @pytest.mark.asyncio
    async def test_stored_credential(self, config_manager):
        await config_manager.store_credential('twitter_bearer_token', 'from-file')

        assert config_manager.get_credential('twitter_bearer_token') == 'from-file'
        assert 'twitter_bearer_token' not in str(config_manager.get_all())

    @pytest.mark.asyncio
    async def test_environment_wins(self, config_manager, monkeypatch):
        await config_manager.store_credential('twitter_bearer_token', 'from-file')
        monkeypatch.setenv("TWITTER_BEARER_TOKEN", "from-env")

        assert config_manager.get_credential('twitter_bearer_token') == 'from-env'

    @pytest.mark.asyncio
    async def test_missing_credential(self, config_manager, monkeypatch):
        monkeypatch.delenv("OKX_API_KEY", raising=False)

        assert config_manager.get_credential('okx_api_key') is None

    @pytest.mark.asyncio
    async def test_credentials_survive_reload(self, config_manager, temp_dir):
        await config_manager.store_credential('okx_api_key', 'abc')

        reloaded = ConfigManager(config_dir=temp_dir / "config")
        await reloaded.initialize()

        assert reloaded.get_credential('okx_api_key') == 'abc'


class TestCredentialStore:
    """Test the encrypted credentials file."""

    def test_round_trip_is_encrypted(self, temp_dir):
        store = CredentialStore(temp_dir / "secrets.enc")
        store.open()

        store.put('okx_api_key', 'abc123')

        assert store.get('okx_api_key') == 'abc123'
        assert b'abc123' not in store.path.read_bytes()

    def test_key_reused_across_instances(self, temp_dir):
        first = CredentialStore(temp_dir / "secrets.enc")
        first.open()
        first.put('coingecko_api_key', 'cg')

        second = CredentialStore(temp_dir / "secrets.enc")
        second.open()

        assert second.get('coingecko_api_key') == 'cg'

    def test_foreign_key_reads_empty(self, temp_dir):
        store = CredentialStore(temp_dir / "secrets.enc")
        store.open()
        store.put('a', '1')
        store.key_path.unlink()

        other = CredentialStore(temp_dir / "secrets.enc")
        other.open()

        assert other.read() == {}

    def test_remove(self, temp_dir):
        store = CredentialStore(temp_dir / "secrets.enc")
        store.open()
        store.put('a', '1')

        assert store.remove('a') is True
        assert store.remove('a') is False

    def test_not_open(self, temp_dir):
        store = CredentialStore(temp_dir / "secrets.enc")

        with pytest.raises(ConfigError):
            store.write({'a': '1'})

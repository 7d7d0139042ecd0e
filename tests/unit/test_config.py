"""Tests for environment-driven gateway configuration."""
import pytest

from stagehand_gateway.api.config import GatewayConfig


class TestDefaults:

    def test_defaults(self, monkeypatch):
        for name in ('PORT', 'SSE_PATH', 'MESSAGE_PATH', 'CORS_ORIGINS', 'SSE_PING_INTERVAL'):
            monkeypatch.delenv(name, raising=False)
        config = GatewayConfig()
        assert config.port == 3001
        assert config.sse_path == '/sse'
        assert config.message_path == '/messages'
        assert config.cors_origins == ['*']
        assert config.ping_interval == 15.0
        config.validate_startup()

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv('PORT', '8080')
        monkeypatch.setenv('SSE_PATH', '/stream')
        monkeypatch.setenv('CORS_ORIGINS', 'https://a.example, https://b.example')
        config = GatewayConfig()
        assert config.port == 8080
        assert config.sse_path == '/stream'
        assert config.cors_origins == ['https://a.example', 'https://b.example']

    def test_invalid_int_env(self, monkeypatch):
        monkeypatch.setenv('PORT', 'eighty')
        with pytest.raises(ValueError, match='PORT'):
            GatewayConfig()


class TestValidateStartup:

    def test_rejects_relative_path(self):
        with pytest.raises(ValueError, match='sse_path must start with'):
            GatewayConfig(sse_path='sse').validate_startup()

    def test_rejects_query_in_message_path(self):
        with pytest.raises(ValueError, match='query string'):
            GatewayConfig(message_path='/messages?x=1').validate_startup()

    def test_rejects_same_paths(self):
        with pytest.raises(ValueError, match='must differ'):
            GatewayConfig(sse_path='/x', message_path='/x').validate_startup()

    def test_reports_every_problem(self):
        with pytest.raises(ValueError) as exc_info:
            GatewayConfig(port=0, ping_interval=0, artifact_max_per_session=0).validate_startup()
        message = str(exc_info.value)
        assert 'port out of range' in message
        assert 'ping_interval' in message
        assert 'artifact_max_per_session' in message

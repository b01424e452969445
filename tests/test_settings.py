"""
Tests for environment-driven configuration.
"""

import pytest
from pydantic import ValidationError

from anchornet.core.orchestrator import PipelineConfig
from anchornet.core.settings import (
    AccountSettings,
    LedgerSettings,
    PipelineSettings,
    RuntimeSettings,
    get_settings,
)
from anchornet.protocol.enums import HashAlgorithm, KeyType, NonceMode


class TestDefaults:
    def test_ledger_defaults(self):
        settings = LedgerSettings()
        assert settings.url == "ws://localhost:9944"
        assert settings.backend == "websocket"
        assert settings.types_file is None
        assert settings.request_timeout == 30.0

    def test_account_defaults(self):
        settings = AccountSettings()
        assert settings.uri == "//Eve"
        assert settings.ss58_format == 42
        assert settings.key_type is KeyType.SR25519

    def test_pipeline_defaults_match_config(self):
        assert PipelineSettings().to_config() == PipelineConfig()
        assert PipelineSettings().grace_period == 30.0

    def test_runtime_defaults(self):
        assert RuntimeSettings().log_level == "INFO"


class TestEnvironment:
    def test_ledger_env(self, monkeypatch):
        monkeypatch.setenv("ANCHORNET_LEDGER_URL", "ws://node:9944")
        monkeypatch.setenv("ANCHORNET_LEDGER_BACKEND", "MEMORY")
        settings = LedgerSettings()
        assert settings.url == "ws://node:9944"
        assert settings.backend == "memory"

    def test_invalid_backend(self, monkeypatch):
        monkeypatch.setenv("ANCHORNET_LEDGER_BACKEND", "http")
        with pytest.raises(ValidationError):
            LedgerSettings()

    def test_pipeline_env(self, monkeypatch):
        monkeypatch.setenv("ANCHORNET_PIPELINE_COUNT", "250")
        monkeypatch.setenv("ANCHORNET_PIPELINE_ALGORITHM", "blake2")
        monkeypatch.setenv("ANCHORNET_PIPELINE_NONCE_MODE", "explicit")
        monkeypatch.setenv("ANCHORNET_PIPELINE_MAX_BATCH_SIZE", "100")
        monkeypatch.setenv("ANCHORNET_PIPELINE_SUBMISSION_TIMEOUT", "12.5")

        config = PipelineSettings().to_config()
        assert config.count == 250
        assert config.algorithm is HashAlgorithm.BLAKE2
        assert config.nonce_mode is NonceMode.EXPLICIT
        assert config.max_batch_size == 100
        assert config.timeout == 12.5

    @pytest.mark.parametrize(
        "name,value",
        [
            ("ANCHORNET_PIPELINE_COUNT", "0"),
            ("ANCHORNET_PIPELINE_HASH_WIDTH", "100"),
            ("ANCHORNET_PIPELINE_GRACE_PERIOD", "-1"),
        ],
    )
    def test_invalid_pipeline_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValidationError):
            PipelineSettings()

    def test_account_env(self, monkeypatch):
        monkeypatch.setenv("ANCHORNET_ACCOUNT_URI", "//Alice")
        assert AccountSettings().uri == "//Alice"

    def test_key_type_env(self, monkeypatch):
        monkeypatch.setenv("ANCHORNET_ACCOUNT_KEY_TYPE", "ed25519")
        assert AccountSettings().key_type is KeyType.ED25519

    def test_invalid_key_type(self, monkeypatch):
        monkeypatch.setenv("ANCHORNET_ACCOUNT_KEY_TYPE", "rsa")
        with pytest.raises(ValidationError):
            AccountSettings()


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_groups(self, monkeypatch):
        monkeypatch.setenv("ANCHORNET_RUNTIME_LOG_LEVEL", "DEBUG")
        get_settings.cache_clear()
        settings = get_settings()
        assert settings.runtime.log_level == "DEBUG"
        assert settings.ledger.url == "ws://localhost:9944"
        assert settings.pipeline.count == 10000

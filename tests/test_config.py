"""
Tests for wescore.config
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from wescore.backends.jsonrpc import JsonRpcBackend
from wescore.config import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("WES_RPC_URL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.rpc_url == "http://localhost:8545"
        assert settings.rpc_timeout == 30.0
        assert settings.retry_max_attempts == 3
        assert settings.batch_size == 50
        assert settings.batch_concurrency == 5
        assert settings.cache_max_entries == 1000
        assert settings.fee_base == 0
        assert settings.sighash_type == "SIGHASH_ALL"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WES_RPC_URL", "http://node.example:9000")
        monkeypatch.setenv("wes_batch_size", "10")
        settings = get_settings()
        assert settings.rpc_url == "http://node.example:9000"
        assert settings.batch_size == 10

    def test_rejects_invalid_values(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, batch_concurrency=0)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, fee_base=-1)

    @pytest.mark.asyncio
    async def test_backend_from_settings(self) -> None:
        settings = Settings(_env_file=None, rpc_url="http://node:1/", retry_max_attempts=1)
        backend = JsonRpcBackend.from_settings(settings)
        assert backend.rpc_url == "http://node:1"
        assert backend.max_retries == 1
        await backend.close()

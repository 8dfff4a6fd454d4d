"""Tests for environment-driven configuration."""

import pytest
from pydantic import ValidationError

from moneylens.config import Settings, load_settings, open_store
from moneylens.core.store_client import DEFAULT_TIMEOUT, StoreClient


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "MONEYLENS_STORE_URL",
        "MONEYLENS_STORE_KEY",
        "MONEYLENS_TIMEOUT",
        "MONEYLENS_HORIZON_MONTHS",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadSettings:
    def test_reads_environment(self, clean_env):
        clean_env.setenv("MONEYLENS_STORE_URL", "https://example.supabase.co")
        clean_env.setenv("MONEYLENS_STORE_KEY", "secret")
        clean_env.setenv("MONEYLENS_HORIZON_MONTHS", "24")
        settings = load_settings()
        assert settings.store_url == "https://example.supabase.co"
        assert settings.store_key == "secret"
        assert settings.timeout == DEFAULT_TIMEOUT
        assert settings.horizon_months == 24

    def test_missing_url(self, clean_env):
        clean_env.setenv("MONEYLENS_STORE_KEY", "secret")
        with pytest.raises(RuntimeError, match="MONEYLENS_STORE_URL"):
            load_settings()

    def test_missing_key(self, clean_env):
        clean_env.setenv("MONEYLENS_STORE_URL", "https://example.supabase.co")
        with pytest.raises(RuntimeError, match="MONEYLENS_STORE_KEY"):
            load_settings()

    def test_rejects_bad_horizon(self):
        with pytest.raises(ValidationError):
            Settings(store_url="u", store_key="k", horizon_months=0)


class TestOpenStore:
    async def test_yields_client_and_closes(self):
        settings = Settings(store_url="https://example.supabase.co", store_key="k", timeout=5)
        async with open_store(settings) as store:
            assert isinstance(store, StoreClient)
            http = store.client
            assert http.timeout.read == 5
        assert http.is_closed

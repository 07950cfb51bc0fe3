"""Settings tests. Environment variables are set per test with monkeypatch."""

import pytest

from backend import HttpContractMonitorBackend, InMemoryBackend
from core.settings import DEFAULT_SERVICES, Settings, make_backend

_VARS = (
    "CONTRACT_MONITOR_URL",
    "MONITORED_SERVICES",
    "DASHBOARD_ACTOR",
    "RECENT_PER_SERVICE",
    "FEED_WINDOW",
    "BACKEND_TIMEOUT_SECONDS",
    "ALLOWED_ORIGINS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env()
        assert settings.backend_url is None
        assert settings.services == DEFAULT_SERVICES
        assert settings.actor == "system"
        assert (settings.per_service_limit, settings.feed_window) == (5, 10)
        assert settings.allowed_origins == ["http://localhost:3000"]

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("CONTRACT_MONITOR_URL", "http://monitor:8085/api")
        monkeypatch.setenv("MONITORED_SERVICES", " billing-service, ,order-service ")
        monkeypatch.setenv("DASHBOARD_ACTOR", "ops@example.com")
        monkeypatch.setenv("RECENT_PER_SERVICE", "3")
        monkeypatch.setenv("FEED_WINDOW", "20")
        monkeypatch.setenv("BACKEND_TIMEOUT_SECONDS", "2.5")

        settings = Settings.from_env()
        assert settings.backend_url == "http://monitor:8085/api"
        assert settings.services == ["billing-service", "order-service"]
        assert settings.actor == "ops@example.com"
        assert (settings.per_service_limit, settings.feed_window) == (3, 20)
        assert settings.timeout_seconds == 2.5

    def test_bad_number_fails_at_startup(self, monkeypatch):
        monkeypatch.setenv("FEED_WINDOW", "ten")
        with pytest.raises(ValueError):
            Settings.from_env()


class TestMakeBackend:
    def test_fixture_backend_without_url(self):
        assert isinstance(make_backend(Settings()), InMemoryBackend)

    async def test_http_backend_with_url(self):
        backend = make_backend(Settings(backend_url="http://monitor:8085/api/"))
        assert isinstance(backend, HttpContractMonitorBackend)
        assert backend.base_url == "http://monitor:8085/api"
        await backend.close()

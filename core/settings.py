"""Dashboard settings.

A .env file, if present, is loaded into the environment at import time;
Settings.from_env() then reads the variables below. Every value has a
default so the dashboard runs out of the box in fixture mode.

Environment variables:
    CONTRACT_MONITOR_URL: REST API root of the contract monitor backend,
        e.g. "http://localhost:8085/api". Unset → in-memory fixture backend.
    MONITORED_SERVICES: Comma-separated service names, in display order.
    DASHBOARD_ACTOR: Identity recorded on lifecycle transitions when the
        caller does not supply one.
    RECENT_PER_SERVICE: Recent changes requested per service (default 5).
    FEED_WINDOW: Maximum size of the merged feed (default 10).
    BACKEND_TIMEOUT_SECONDS: Per-request HTTP timeout (default 15).
    ALLOWED_ORIGINS: Comma-separated CORS origins for the API.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from backend import ContractMonitorBackend, HttpContractMonitorBackend, InMemoryBackend

load_dotenv()

DEFAULT_SERVICES = ["user-service", "order-service", "product-service", "notification-service"]


def _csv(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Resolved dashboard configuration.

    A dataclass rather than a Pydantic model because it is built from
    trusted process environment, never from request input.
    """

    backend_url: str | None = None
    services: list[str] = field(default_factory=lambda: list(DEFAULT_SERVICES))
    actor: str = "system"
    per_service_limit: int = 5
    feed_window: int = 10
    timeout_seconds: float = 15.0
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from os.environ.

        Raises:
            ValueError: If a numeric variable is set to something that is
                not a number. Misconfiguration fails at startup, not at the
                first refresh.
        """
        env = os.environ
        return cls(
            backend_url=env.get("CONTRACT_MONITOR_URL") or None,
            services=_csv(env.get("MONITORED_SERVICES"), DEFAULT_SERVICES),
            actor=env.get("DASHBOARD_ACTOR", "system"),
            per_service_limit=int(env.get("RECENT_PER_SERVICE", "5")),
            feed_window=int(env.get("FEED_WINDOW", "10")),
            timeout_seconds=float(env.get("BACKEND_TIMEOUT_SECONDS", "15")),
            allowed_origins=_csv(env.get("ALLOWED_ORIGINS"), ["http://localhost:3000"]),
        )


def make_backend(settings: Settings) -> ContractMonitorBackend:
    """Return the HTTP backend if a URL is configured, else the fixture backend."""
    if settings.backend_url:
        return HttpContractMonitorBackend(settings.backend_url, timeout_seconds=settings.timeout_seconds)
    return InMemoryBackend.from_fixture()

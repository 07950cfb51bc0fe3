"""HTTP backend client.

Talks to the contract monitor REST API with httpx. Responsible for two
things:
1. Mapping each backend capability to its endpoint
2. Turning every transport-level problem into TransportFailure

Endpoints (relative to CONTRACT_MONITOR_URL, e.g. http://localhost:8085/api):

    GET    /breaking-changes/{service}/recent?limit=N
    GET    /breaking-changes/statistics
    GET    /analysis/status
    POST   /analysis/{service}
    GET    /baseline/{service}
    POST   /baseline/{service}/set-latest
    DELETE /baseline/{service}
    POST   /breaking-changes/{id}/acknowledge   {"acknowledgedBy"}
    POST   /breaking-changes/{id}/resolve       {"resolvedBy", "notes"}
    POST   /breaking-changes/{id}/ignore        {"ignoredBy", "reason"}
"""

import logging

import httpx
from pydantic import ValidationError

from backend.base import ContractMonitorBackend, TransportFailure
from schemas.change import ChangeRecord
from schemas.health import BaselineInfo, ChangeStatistics, ServiceStatusReport

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15


class HttpContractMonitorBackend(ContractMonitorBackend):
    """ContractMonitorBackend backed by the contract monitor REST API.

    One httpx.AsyncClient is shared by all calls so concurrent per-service
    fetches reuse connections. Call close() (or use the instance as an async
    context manager) when done.

    Example usage:
        async with HttpContractMonitorBackend("http://localhost:8085/api") as backend:
            changes = await backend.fetch_recent_changes("order-service", 5)

    Attributes:
        base_url: Root of the REST API, including the /api prefix.
        client: The underlying async httpx client.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            base_url: REST API root (e.g. "http://localhost:8085/api").
            timeout_seconds: Per-request timeout enforced by httpx. This is
                the only timeout on backend calls.
            transport: Optional httpx transport. Tests pass an
                httpx.MockTransport here; production leaves it None.
        """
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "HttpContractMonitorBackend":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def fetch_recent_changes(self, service_name: str, limit: int) -> list[ChangeRecord]:
        data = await self._request(
            "fetch_recent_changes",
            "GET",
            f"/breaking-changes/{service_name}/recent",
            params={"limit": limit},
        )
        try:
            return [ChangeRecord.model_validate(item) for item in data]
        except (TypeError, ValidationError) as exc:
            raise TransportFailure(
                f"Unreadable breaking changes for '{service_name}': {exc}",
                operation="fetch_recent_changes",
            ) from exc

    async def fetch_all_service_status(self) -> ServiceStatusReport:
        data = await self._request("fetch_all_service_status", "GET", "/analysis/status")
        return self._validate(ServiceStatusReport, data, "fetch_all_service_status")

    async def fetch_statistics(self) -> ChangeStatistics:
        data = await self._request("fetch_statistics", "GET", "/breaking-changes/statistics")
        return self._validate(ChangeStatistics, data, "fetch_statistics")

    async def fetch_baseline(self, service_name: str) -> BaselineInfo:
        """Fetch the baseline and flatten the backend's nested shape.

        The backend answers {"hasBaseline": false, "message": ...} without a
        baseline, or {"hasBaseline": true, "baseline": {<ApiSpec>}} with one.
        """
        data = await self._request("fetch_baseline", "GET", f"/baseline/{service_name}")
        if not isinstance(data, dict) or not data.get("hasBaseline"):
            return BaselineInfo(has_baseline=False)

        spec = data.get("baseline")
        if not isinstance(spec, dict):
            raise TransportFailure(
                f"Baseline of '{service_name}' is not an object: {spec!r}",
                operation="fetch_baseline",
            )
        return self._validate(
            BaselineInfo,
            {
                "hasBaseline": True,
                "baselineSetAt": spec.get("baselineSetAt"),
                "version": spec.get("version"),
            },
            "fetch_baseline",
        )

    # ── Writes ────────────────────────────────────────────────────────────────

    async def acknowledge(self, change_id: str, actor: str) -> None:
        await self._request(
            "acknowledge",
            "POST",
            f"/breaking-changes/{change_id}/acknowledge",
            json={"acknowledgedBy": actor},
        )

    async def resolve(self, change_id: str, actor: str, notes: str) -> None:
        await self._request(
            "resolve",
            "POST",
            f"/breaking-changes/{change_id}/resolve",
            json={"resolvedBy": actor, "notes": notes},
        )

    async def ignore(self, change_id: str, actor: str, reason: str) -> None:
        await self._request(
            "ignore",
            "POST",
            f"/breaking-changes/{change_id}/ignore",
            json={"ignoredBy": actor, "reason": reason},
        )

    async def set_latest_as_baseline(self, service_name: str) -> None:
        await self._request("set_latest_as_baseline", "POST", f"/baseline/{service_name}/set-latest")

    async def clear_baseline(self, service_name: str) -> None:
        await self._request("clear_baseline", "DELETE", f"/baseline/{service_name}")

    async def analyze_service(self, service_name: str) -> dict:
        data = await self._request("analyze_service", "POST", f"/analysis/{service_name}")
        return data if isinstance(data, dict) else {}

    # ── Private helpers ───────────────────────────────────────────────────────

    async def _request(self, operation: str, method: str, url: str, **kwargs):
        """Send one request and return the decoded JSON body.

        Returns None for empty bodies.

        Raises:
            TransportFailure: On connection errors, timeouts, non-2xx
                statuses and bodies that are not JSON.
        """
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "%s %s returned %d.",
                method,
                url,
                exc.response.status_code,
            )
            raise TransportFailure(
                f"{operation} failed: backend returned {exc.response.status_code}",
                operation=operation,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise TransportFailure(f"{operation} failed: {exc}", operation=operation) from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransportFailure(
                f"{operation} failed: response body is not JSON",
                operation=operation,
            ) from exc

    @staticmethod
    def _validate(schema, data, operation: str):
        try:
            return schema.model_validate(data if data is not None else {})
        except ValidationError as exc:
            raise TransportFailure(
                f"{operation} failed: unexpected response shape: {exc}",
                operation=operation,
            ) from exc

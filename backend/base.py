"""ContractMonitorBackend abstract base class.

Defines every capability the dashboard core consumes from the contract
monitor backend. The aggregator, health view and runtime depend only on this
interface, never on a concrete transport. Swapping the HTTP backend for the
in-memory fixture backend (or anything else) means writing a new class that
satisfies this interface, with zero changes to the rest of the system.

All methods are async because real implementations do network I/O. Any
failure to complete a call is reported as TransportFailure so callers only
have one exception type to degrade on.
"""

from abc import ABC, abstractmethod

from schemas.change import ChangeRecord
from schemas.health import BaselineInfo, ChangeStatistics, ServiceStatusReport


class TransportFailure(Exception):
    """Raised when a backend call did not complete.

    Covers connection errors, timeouts, non-2xx responses and unreadable
    bodies alike. The aggregator treats it as "service unreachable" and
    degrades to an empty result; lifecycle actions surface it to the user.

    Attributes:
        operation: Which capability failed (e.g. "fetch_recent_changes").
    """

    def __init__(self, message: str, operation: str):
        super().__init__(message)
        self.operation = operation


class ContractMonitorBackend(ABC):
    """Abstract base class for contract monitor backend clients.

    To add a new backend, subclass ContractMonitorBackend and implement every
    abstract method. close() is optional.
    """

    @abstractmethod
    async def fetch_recent_changes(self, service_name: str, limit: int) -> list[ChangeRecord]:
        """Return up to limit of the service's most recent breaking changes, newest first.

        Raises:
            TransportFailure: If the backend could not be reached.
        """

    @abstractmethod
    async def fetch_all_service_status(self) -> ServiceStatusReport:
        """Return the online status of every monitored service."""

    @abstractmethod
    async def fetch_statistics(self) -> ChangeStatistics:
        """Return backend-wide breaking change counts."""

    @abstractmethod
    async def fetch_baseline(self, service_name: str) -> BaselineInfo:
        """Return the service's baseline state. has_baseline=False if none is pinned."""

    @abstractmethod
    async def acknowledge(self, change_id: str, actor: str) -> None:
        """Record that actor has acknowledged the change."""

    @abstractmethod
    async def resolve(self, change_id: str, actor: str, notes: str) -> None:
        """Record that actor has resolved the change, with notes."""

    @abstractmethod
    async def ignore(self, change_id: str, actor: str, reason: str) -> None:
        """Record that actor has ignored the change, with a reason."""

    @abstractmethod
    async def set_latest_as_baseline(self, service_name: str) -> None:
        """Pin the service's most recent spec as its comparison baseline."""

    @abstractmethod
    async def clear_baseline(self, service_name: str) -> None:
        """Unpin the service's baseline."""

    @abstractmethod
    async def analyze_service(self, service_name: str) -> dict:
        """Ask the backend to analyse the service now.

        Returns:
            The backend's summary of the run (message, breaking change count).
        """

    async def close(self) -> None:
        """Release any resources held by the backend (connection pools).

        Default is a no-op so callers can always call close() safely.
        """

"""Contract monitor backend clients."""

from backend.base import ContractMonitorBackend, TransportFailure
from backend.memory import InMemoryBackend
from backend.rest import HttpContractMonitorBackend

__all__ = ["ContractMonitorBackend", "TransportFailure", "InMemoryBackend", "HttpContractMonitorBackend"]

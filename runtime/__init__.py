"""Runtime handle consumed by the orchestrator."""

from .client import FunctionDefinition, RegisteredService, RuntimeClient, ServiceDefinition
from .interface import RuntimeHandle, Startable

__all__ = [
    "FunctionDefinition",
    "RegisteredService",
    "RuntimeClient",
    "RuntimeHandle",
    "ServiceDefinition",
    "Startable",
]

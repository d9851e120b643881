"""Core orchestrator package: service discovery, integrations and lifecycle."""

from .integrations import initialize_integrations, load_integrations
from .lifecycle import Orchestrator
from .models import (
    BootstrapError,
    IntegrationDescriptor,
    IntegrationError,
    OrchestratorState,
    RegisteredService,
    ServiceLoadError,
    Settlement,
    UnregisteredService,
    classify,
)
from .tree import discover

__all__ = [
    "BootstrapError",
    "IntegrationDescriptor",
    "IntegrationError",
    "Orchestrator",
    "OrchestratorState",
    "RegisteredService",
    "ServiceLoadError",
    "Settlement",
    "UnregisteredService",
    "classify",
    "discover",
    "initialize_integrations",
    "load_integrations",
]

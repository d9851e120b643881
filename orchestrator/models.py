"""Pydantic shapes and result types for service discovery and bootstrap."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import ModuleType, SimpleNamespace
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

INTEGRATION_TYPE = "inferable-integration"


class BootstrapError(Exception):
    """Base class for failures that abort bootstrap."""


class ServiceLoadError(BootstrapError):
    """A service module could not be imported."""

    def __init__(self, path: Path, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to load service module {path}: {cause!r}")


class IntegrationError(BootstrapError):
    """An integration did not initialize into a startable service."""

    def __init__(self, integration: str, reason: str) -> None:
        self.integration = integration
        self.reason = reason
        super().__init__(f"Integration '{integration}' failed to initialize: {reason}")


# ---------------------------------------------------------------------------
# shapes

class _Shape(BaseModel):
    model_config = ConfigDict(from_attributes=True, arbitrary_types_allowed=True, extra="ignore")


class DefinitionShape(_Shape):
    name: str


class RegisteredServiceShape(_Shape):
    """A service already bound to the runtime, e.g. returned by ``runtime.service(...)``."""

    start: Callable[..., Any]
    stop: Callable[..., Any]
    definition: DefinitionShape


class UnregisteredServiceShape(_Shape):
    """A bare service definition still to be bound."""

    name: str
    functions: list[Any]


class IntegrationShape(_Shape):
    type: Literal["inferable-integration"]
    name: str
    version: str
    initialize: Callable[..., Any]


def validate_shape(shape: type[_Shape], value: Any) -> tuple[_Shape | None, list[dict[str, Any]]]:
    """
    Validate ``value`` against ``shape`` without raising.
    Returns the parsed shape (or None) and the list of validation issues.
    """
    if isinstance(value, ModuleType):
        value = {name: getattr(value, name) for name in shape.model_fields if hasattr(value, name)}
    try:
        return shape.model_validate(value, from_attributes=True), []
    except ValidationError as exc:
        return None, exc.errors(include_url=False, include_context=False)
    except Exception as exc:
        # raised by attribute getters on exotic objects; still a mismatch
        return None, [{"type": type(exc).__name__, "msg": str(exc), "loc": ()}]


# ---------------------------------------------------------------------------
# classification

def _member(value: Any, name: str) -> Any:
    return value[name] if isinstance(value, Mapping) else getattr(value, name)


class ServiceAdapter:
    """
    Attribute view over a registered service exported as a mapping, or whose
    definition is a mapping. Exposes ``start``, ``stop`` and ``definition.name``
    like a service bound by the runtime.
    """

    def __init__(self, value: Any) -> None:
        self.wrapped = value
        self.start = _member(value, "start")
        self.stop = _member(value, "stop")
        definition = _member(value, "definition")
        if isinstance(definition, Mapping):
            definition = SimpleNamespace(**{str(key): item for key, item in definition.items()})
        self.definition = definition

    def __repr__(self) -> str:
        return f"ServiceAdapter({self.definition.name!r})"


def as_startable(value: Any) -> Any:
    """Return ``value`` itself when it already has attribute access, else a ServiceAdapter."""
    if isinstance(value, Mapping) or isinstance(getattr(value, "definition", None), Mapping):
        return ServiceAdapter(value)
    return value


@dataclass(frozen=True)
class RegisteredService:
    service: Any
    source: Path | None = None

    @property
    def name(self) -> str:
        return self.service.definition.name


@dataclass(frozen=True)
class UnregisteredService:
    name: str
    functions: list[Any]
    source: Path | None = None

    def as_definition(self) -> dict[str, Any]:
        return {"name": self.name, "functions": list(self.functions)}


ClassifiedService = RegisteredService | UnregisteredService


def classify(value: Any, source: Path | None = None) -> ClassifiedService | None:
    """Classify an exported value. Registered wins over unregistered; None means neither."""
    registered, _ = validate_shape(RegisteredServiceShape, value)
    if registered is not None:
        return RegisteredService(service=as_startable(value), source=source)
    unregistered, _ = validate_shape(UnregisteredServiceShape, value)
    if unregistered is not None:
        return UnregisteredService(name=unregistered.name, functions=unregistered.functions, source=source)
    return None


# ---------------------------------------------------------------------------
# orchestrator state

@dataclass(frozen=True)
class IntegrationDescriptor:
    name: str
    version: str
    initialize: Callable[..., Any]
    package: str


@dataclass
class Settlement:
    """Outcome of one start() call."""

    name: str
    status: Literal["fulfilled", "rejected"]
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "fulfilled"


@dataclass
class OrchestratorState:
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    startables: list[Any] = field(default_factory=list)
    settlements: list[Settlement] = field(default_factory=list)

    def uptime_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        return max((now - self.start_time).total_seconds(), 0.0)

    def settlement_for(self, index: int) -> Settlement | None:
        return self.settlements[index] if index < len(self.settlements) else None


__all__ = [
    "BootstrapError",
    "ClassifiedService",
    "DefinitionShape",
    "INTEGRATION_TYPE",
    "IntegrationDescriptor",
    "IntegrationError",
    "IntegrationShape",
    "OrchestratorState",
    "RegisteredService",
    "RegisteredServiceShape",
    "ServiceAdapter",
    "ServiceLoadError",
    "Settlement",
    "UnregisteredService",
    "UnregisteredServiceShape",
    "as_startable",
    "classify",
    "validate_shape",
]

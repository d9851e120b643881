"""
runtime.client
--------------
Control-plane client that binds service definitions to the runtime.

A RegisteredService announces itself and its functions to the control
plane when started, and releases its HTTP session when stopped.
Functions are invoked locally, with their payload validated against
the pydantic model declared as the function's input schema.
"""

from __future__ import annotations

import inspect
import logging
import uuid
from typing import Any, Callable, Mapping

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = logging.getLogger(__name__)


class FunctionDefinition(BaseModel):
    """A callable exposed by a service."""

    model_config = ConfigDict(from_attributes=True, arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    func: Callable[..., Any]
    description: str | None = None
    input_model: type[BaseModel] | None = None
    config: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _unpack_schema(cls, data: Any) -> Any:
        # a bare callable is its own function, named after itself
        if callable(data) and not isinstance(data, Mapping) and not hasattr(data, "func"):
            return {"name": getattr(data, "__name__", None), "func": data, "description": inspect.getdoc(data)}
        # accept the {"schema": {"input": Model}} registration style
        if isinstance(data, Mapping) and "schema" in data:
            data = dict(data)
            schema = data.pop("schema") or {}
            if "input_model" not in data:
                data["input_model"] = schema.get("input") if isinstance(schema, Mapping) else getattr(schema, "input", None)
        return data

    def describe(self) -> dict[str, Any]:
        described: dict[str, Any] = {"name": self.name, "description": self.description, "config": self.config}
        if self.input_model is not None:
            described["input"] = self.input_model.model_json_schema()
        return described


class ServiceDefinition(BaseModel):
    """Name and functions of a service, before or after binding."""

    model_config = ConfigDict(from_attributes=True, arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    functions: list[FunctionDefinition] = Field(default_factory=list)

    def function_names(self) -> list[str]:
        return [f.name for f in self.functions]


class RegisteredService:
    """
    A service bound to a RuntimeClient.

    Args:
        definition (ServiceDefinition): what the service exposes.
        runtime (RuntimeClient): the client that owns the control-plane settings.
    """

    def __init__(self, definition: ServiceDefinition, runtime: RuntimeClient):
        self.definition = definition
        self._runtime = runtime
        self._session: httpx.AsyncClient | None = None

    @property
    def is_started(self) -> bool:
        return self._session is not None

    def register(
        self,
        name: str,
        func: Callable[..., Any],
        description: str | None = None,
        schema: Mapping[str, Any] | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> FunctionDefinition:
        """Add a function to the service. Must happen before start()."""
        if self.is_started:
            raise RuntimeError(f"Cannot register '{name}': service '{self.definition.name}' is already started")
        if name in self.definition.function_names():
            raise ValueError(f"Function '{name}' is already registered on service '{self.definition.name}'")
        function = FunctionDefinition.model_validate(
            {"name": name, "func": func, "description": description, "schema": schema, "config": dict(config or {})}
        )
        self.definition.functions.append(function)
        return function

    async def start(self) -> dict[str, Any]:
        """Announce the service and its functions to the control plane."""
        if self._session is not None:
            raise RuntimeError(f"Service '{self.definition.name}' is already started")
        session = self._runtime.open_session()
        body = {
            "service": self.definition.name,
            "functions": [f.describe() for f in self.definition.functions],
        }
        try:
            response = await session.post("/machines", json=body)
            response.raise_for_status()
        except httpx.HTTPError:
            await session.aclose()
            raise
        self._session = session
        logger.debug(f"Service {self.definition.name} announced to {self._runtime.endpoint}")
        return response.json() if response.content else {}

    async def stop(self) -> None:
        """Release the control-plane session. No-op if not started."""
        if self._session is None:
            return
        session, self._session = self._session, None
        await session.aclose()

    async def invoke(self, function_name: str, payload: Mapping[str, Any] | None = None) -> Any:
        """Validate ``payload`` against the function's input model and call it."""
        for function in self.definition.functions:
            if function.name == function_name:
                break
        else:
            raise KeyError(f"Service '{self.definition.name}' has no function '{function_name}'")
        arguments: Any = dict(payload or {})
        if function.input_model is not None:
            arguments = function.input_model.model_validate(arguments).model_dump()
        result = function.func(arguments)
        if inspect.isawaitable(result):
            result = await result
        return result


class RuntimeClient:
    """
    Runtime handle backed by the control-plane REST API.

    Args:
        api_secret (str): bearer secret for the control plane.
        endpoint (str): base URL of the control plane, scheme included.
        transport: optional httpx transport, used by tests.
    """

    def __init__(
        self,
        api_secret: str,
        endpoint: str = "https://api.inferable.ai",
        transport: httpx.AsyncBaseTransport | None = None,
        machine_id: str | None = None,
    ):
        self.api_secret = api_secret
        self.endpoint = endpoint.rstrip("/")
        self.machine_id = machine_id or str(uuid.uuid4())
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Any) -> RuntimeClient:
        return cls(api_secret=settings.api_secret, endpoint=settings.api_endpoint)

    def open_session(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.endpoint,
            headers={"Authorization": f"bearer {self.api_secret}", "X-Machine-ID": self.machine_id},
            transport=self._transport,
            timeout=10,
        )

    def service(self, definition: Any) -> RegisteredService:
        """Bind a definition (mapping, object, or ServiceDefinition) to this runtime."""
        if not isinstance(definition, ServiceDefinition):
            definition = ServiceDefinition.model_validate(definition, from_attributes=True)
        logger.debug(f"Binding service {definition.name} with {len(definition.functions)} function(s)")
        return RegisteredService(definition, self)


__all__ = ["FunctionDefinition", "RegisteredService", "RuntimeClient", "ServiceDefinition"]

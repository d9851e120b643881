from typing import Any, Awaitable, Protocol, runtime_checkable


class DefinitionProtocol(Protocol):
    """Anything carrying the name of a service."""
    @property
    def name(self) -> str: ...


@runtime_checkable
class Startable(Protocol):
    """Interface Protocol for components the orchestrator starts and stops.
    Implementations are usually services bound through a RuntimeHandle, or
    the service objects handed back by integration initializers.
    """
    @property
    def definition(self) -> DefinitionProtocol: ...
    def start(self) -> Awaitable[Any]: ...
    def stop(self) -> Awaitable[Any]: ...


class RuntimeHandle(Protocol):
    """
    Protocol for the runtime that services register their functions against.
    The same handle is passed to every integration's ``initialize`` call.
    """
    def service(self, definition: Any) -> Startable:
        """
        Bind a bare service definition (name + functions) to the runtime.
        :param definition: a mapping or object with ``name`` and ``functions``.
        :return: the bound service, not yet started.
        """
        ...

"""
orchestrator.lifecycle
----------------------
Bootstrap and coordinated shutdown of discovered services and integrations.

Bootstrap order: discover local services, bind the unregistered ones to the
runtime, initialize integrations, start everything concurrently, then wire
termination signals to shutdown().
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import signal
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from .integrations import initialize_integrations, load_integrations
from .models import OrchestratorState, RegisteredService, Settlement
from .tree import discover

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


async def _settle(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


async def _call(method: Any) -> Any:
    return await _settle(method())


def _describe_error(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class Orchestrator:
    """
    Owns the startables of the process, from discovery to shutdown.

    Args:
        runtime: the runtime handle; binds unregistered definitions and is
            passed to every integration's ``initialize``.
        services_dir: root of the service tree to discover.
        integration_packages: explicit integration package names; when None
            the host distribution's declared dependencies are used.
    """

    def __init__(
        self,
        runtime: Any,
        services_dir: str | Path,
        integration_packages: Iterable[str] | None = None,
    ):
        self.runtime = runtime
        self.services_dir = Path(services_dir)
        self.integration_packages = list(integration_packages) if integration_packages is not None else None
        self.state: OrchestratorState | None = None
        self._shutdown_task: asyncio.Task | None = None
        self._stopped = asyncio.Event()
        self._signals_installed: list[signal.Signals] = []

    @property
    def startables(self) -> list[Any]:
        return self.state.startables if self.state else []

    async def bootstrap(self, install_signal_handlers: bool = True) -> OrchestratorState:
        state = OrchestratorState(start_time=datetime.now(timezone.utc))

        logger.info("Discovering services...")
        services = []
        for classified in discover(self.services_dir):
            if isinstance(classified, RegisteredService):
                services.append(classified.service)
            else:
                services.append(self.runtime.service(classified.as_definition()))

        integrations = load_integrations(self.integration_packages)

        logger.info(
            "Starting services...",
            extra={"context": {
                "services": [s.definition.name for s in services],
                "integrations": [i.name for i in integrations],
            }},
        )

        integration_services = await initialize_integrations(integrations, self.runtime)
        state.startables = [*services, *integration_services]

        state.settlements = await self.start_all(state.startables)
        logger.info(
            "Starting services complete!",
            extra={"context": {"services": [
                {"name": s.name, "status": s.status, **({"reason": s.reason} if s.reason else {})}
                for s in state.settlements
            ]}},
        )

        self.state = state
        if install_signal_handlers:
            self.install_signal_handlers()
        return state

    async def start_all(self, startables: list[Any]) -> list[Settlement]:
        """Start every startable concurrently; a failure is recorded, never raised."""
        results = await asyncio.gather(*(_call(s.start) for s in startables), return_exceptions=True)
        settlements = []
        for startable, result in zip(startables, results):
            name = startable.definition.name
            if isinstance(result, BaseException):
                logger.error(
                    f"Service {name} failed to start",
                    exc_info=(type(result), result, result.__traceback__),
                )
                settlements.append(Settlement(name=name, status="rejected", reason=_describe_error(result)))
            else:
                settlements.append(Settlement(name=name, status="fulfilled"))
        return settlements

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                # no signal support on this platform or thread
                logger.debug(f"Cannot install handler for {sig.name}")
                continue
            self._signals_installed.append(sig)
        if self._signals_installed:
            logger.debug(f"Signal handlers installed ({', '.join(s.name for s in self._signals_installed)})")

    def remove_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed = []

    def request_shutdown(self, reason: str = "request") -> asyncio.Task | None:
        """Schedule shutdown(); further requests while it runs are ignored."""
        if self._shutdown_task is not None:
            logger.info(f"Shutdown already in progress, ignoring {reason}")
            return None
        self._shutdown_task = asyncio.ensure_future(self.shutdown(reason))
        return self._shutdown_task

    async def shutdown(self, reason: str = "request") -> None:
        if self._stopped.is_set() or (
            self._shutdown_task is not None and self._shutdown_task is not asyncio.current_task()
        ):
            logger.info(f"Shutdown already handled, ignoring {reason}")
            return
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.current_task()
        logger.info("Shutting down services...", extra={"context": {"reason": reason}})
        startables = self.startables
        results = await asyncio.gather(*(_call(s.stop) for s in startables), return_exceptions=True)
        for startable, result in zip(startables, results):
            if isinstance(result, BaseException):
                logger.warning(f"Service {startable.definition.name} failed to stop: {_describe_error(result)}")
        logger.info("All services stopped!")
        self._stopped.set()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    @property
    def is_stopped(self) -> bool:
        return self._stopped.is_set()


__all__ = ["Orchestrator", "SHUTDOWN_SIGNALS"]

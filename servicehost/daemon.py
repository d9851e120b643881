"""
servicehost.daemon
------------------
Process entry point. Bootstraps the orchestrator, then serves the
health/liveness endpoints with FastAPI until a termination signal
triggers coordinated shutdown.

Endpoints:
    /live    - plain-text "ok" while the process is up.
    /health  - uptime, pid and the status of every service.
Both answer any HTTP method; every other path is a plain-text 404.
"""
import asyncio
import contextlib
import logging
import os
from typing import Any

import typer
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.app_setup import monkeypatch_print, print_error, setup_logging
from common.settings import ConfigurationError, Settings, load_settings
from orchestrator import Orchestrator, OrchestratorState
from runtime import RuntimeClient

logger = logging.getLogger("servicehost.daemon")

# the endpoints answer by path alone
ANY_METHOD = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _function_name(function: Any) -> str:
    if isinstance(function, dict):
        return str(function.get("name"))
    return getattr(function, "name", None) or getattr(function, "__name__", repr(function))


def describe_service(startable: Any, state: OrchestratorState, index: int) -> dict[str, Any]:
    """Health entry for one startable: its definition plus its start settlement."""
    definition = startable.definition
    entry: dict[str, Any] = {"name": definition.name}
    functions = getattr(definition, "functions", None)
    if functions:
        entry["functions"] = [_function_name(f) for f in functions]
    settlement = state.settlement_for(index)
    if settlement is not None:
        entry["status"] = settlement.status
        if settlement.reason:
            entry["error"] = settlement.reason
    return entry


def create_app(state: OrchestratorState) -> FastAPI:
    """Build the read-only health app over an already bootstrapped state."""
    app = FastAPI(title="servicehost", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.orchestrator_state = state

    @app.exception_handler(StarletteHTTPException)
    async def plain_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return PlainTextResponse("Not found", status_code=404)
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.api_route("/live", methods=ANY_METHOD, response_class=PlainTextResponse)
    def live():
        """Liveness: the process is up, whatever the services are doing."""
        return "ok"

    @app.api_route("/health", methods=ANY_METHOD)
    def health():
        """Health/status endpoint: uptime and the services owned by the orchestrator."""
        current = app.state.orchestrator_state
        return JSONResponse({
            "uptime": f"{current.uptime_seconds():.3f}s",
            "status": "ok",
            "pid": os.getpid(),
            "services": [describe_service(s, current, i) for i, s in enumerate(current.startables)],
        })

    return app


class HealthServer(uvicorn.Server):
    """uvicorn server that leaves SIGTERM/SIGINT to the orchestrator."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class FatalError(Exception):
    """An exception escaped a background task."""


async def serve(settings: Settings, orchestrator: Orchestrator, host: str = "0.0.0.0") -> None:
    """Bootstrap, serve health until shutdown completes, then stop the server."""
    loop = asyncio.get_running_loop()
    fatal: asyncio.Future = loop.create_future()

    def on_unhandled(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        error = context.get("exception") or FatalError(context.get("message", "unknown error"))
        logger.error("Unhandled rejection!", exc_info=(type(error), error, error.__traceback__))
        if not fatal.done():
            fatal.set_exception(FatalError(str(error)))

    loop.set_exception_handler(on_unhandled)

    state = await orchestrator.bootstrap()

    config = uvicorn.Config(create_app(state), host=host, port=settings.port, log_level=settings.log_level.lower(), log_config=None)
    server = HealthServer(config)
    server_task = asyncio.create_task(server.serve())
    logger.info(f"Health server listening on port {settings.port}")

    stopped = asyncio.create_task(orchestrator.wait_stopped())
    try:
        done, _ = await asyncio.wait({stopped, server_task, fatal}, return_when=asyncio.FIRST_COMPLETED)
        if fatal in done:
            fatal.result()
        if server_task in done and not orchestrator.is_stopped:
            server_task.result()
            # server exited on its own (e.g. port in use): still stop the services
            await orchestrator.shutdown("health server exited")
    finally:
        stopped.cancel()
        server.should_exit = True
        if not server_task.done():
            await server_task
    logger.info("Server stopped, exiting process")


def main(settings: Settings, integration_packages: list[str] | None = None) -> int:
    """Supervisory boundary: any exception escaping the main task is a fatal exit."""
    runtime = RuntimeClient.from_settings(settings)
    logger.info(
        "Runtime client initializing...",
        extra={"context": {
            "environment": settings.environment,
            "apiSecret": settings.redacted_secret(),
            "endpoint": settings.api_endpoint,
            "machineId": runtime.machine_id,
        }},
    )

    async def _run() -> None:
        orchestrator = Orchestrator(runtime, settings.services_dir, integration_packages)
        await serve(settings, orchestrator)

    try:
        asyncio.run(_run())
    except FatalError:
        return 1
    except Exception:
        logger.exception("Uncaught exception!")
        return 1
    return 0


app_cli = typer.Typer(add_completion=False)


@app_cli.command()
def run(
    port: int = typer.Option(None, help="Port for the health server (PORT or 8173 if not set)"),
    integration: list[str] = typer.Option(None, help="Integration package to load (repeatable; defaults to declared dependencies)"),
):
    """Discover, start and serve the services until SIGTERM/SIGINT."""
    monkeypatch_print()
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print_error(str(exc))
        raise typer.Exit(1)
    if port is not None:
        settings = settings.model_copy(update={"port": port})
    setup_logging(app_name="servicehost", environment=settings.environment, loglevel=settings.log_level)
    raise typer.Exit(main(settings, integration or None))


if __name__ == "__main__":
    app_cli()

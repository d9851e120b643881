"""
Reusable logging and print setup for all parts of the project.

Functions:
    setup_logging      - Configure and return the root logger.
    set_print_logger   - Set the logger for print_and_log and print_error.
    monkeypatch_print  - Replace built-in print with rich print.
    print_and_log      - Print and log an info message.
    print_error        - Print and log an error message.

Contextual fields travel with a record as ``extra={"context": {...}}``.
"""

import builtins
import logging
import os
import sys
from typing import Any, Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

# Module-level variable to hold the logger for print_and_log and print_error
_print_logger: Optional[logging.Logger] = None


def _add_record_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Merge ``extra={"context": ...}`` fields and the emitting pid into the event."""
    record = event_dict.get("_record")
    if record is not None:
        event_dict["pid"] = record.process
        event_dict.update(getattr(record, "context", None) or {})
    return event_dict


class JsonFormatter(structlog.stdlib.ProcessorFormatter):
    """One JSON object per line, for log collectors in production."""

    def __init__(self) -> None:
        super().__init__(
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso", key="time"),
                _add_record_context,
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.EventRenamer("message"),
                structlog.processors.JSONRenderer(default=str),
            ],
        )


class ContextFormatter(logging.Formatter):
    """Append contextual fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, "context", None)
        if context:
            fields = " ".join(f"{key}={value!r}" for key, value in context.items())
            message = f"{message} {fields}"
        return message


def setup_logging(
    app_name: str = "servicehost",
    environment: str = "development",
    loglevel: int | str = logging.INFO,
    logfile: Optional[str] = None,
    console: bool = True,
) -> logging.Logger:
    """
    Set up logging for the application.
    - In production, logs JSON lines to stderr (structlog JSONRenderer).
    - Otherwise, logs through rich to the console.
    - If logfile is given, the same records are also written there.
    - console=False keeps the terminal for command output only (CLIs).
    Returns the configured logger.
    """
    logger = logging.getLogger()
    logger.setLevel(loglevel.upper() if isinstance(loglevel, str) else loglevel)

    handlers: list[logging.Handler] = []
    if console and environment == "production":
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JsonFormatter())
        handlers.append(handler)
    elif console:
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
        handler.setFormatter(ContextFormatter(f"[{app_name}] %(message)s"))
        handlers.append(handler)

    if logfile is not None:
        os.makedirs(os.path.dirname(os.path.abspath(logfile)), exist_ok=True)
        file_handler = logging.FileHandler(logfile)
        file_handler.setFormatter(ContextFormatter("%(asctime)s %(levelname)s %(process)d %(message)s"))
        handlers.append(file_handler)

    # Remove any existing handlers
    for h in logger.handlers[:]:
        logger.removeHandler(h)

    for h in handlers:
        logger.addHandler(h)
    set_print_logger(logger)
    logger.debug(f"Logger initialized for {app_name} ({environment}).")
    return logger


def set_print_logger(logger: logging.Logger):
    """
    Set the logger to be used by print_and_log and print_error.
    """
    global _print_logger
    _print_logger = logger


def monkeypatch_print():
    """
    Monkeypatch built-in print to use rich for all output (no logging).
    Lines are never wrapped, so JSON output stays parseable.
    """
    def print_to_rich(*args, sep=" ", end="\n", file=None, flush=False):
        Console(file=file, soft_wrap=True).print(*args, sep=sep, end=end)
    builtins.print = print_to_rich  # monkeypatch print


def print_and_log(message: str, **kwargs):
    """
    Print to console (via print) and log as info.
    """
    print(message, **kwargs)
    if _print_logger is not None:
        _print_logger.info(message)


def print_error(message: str, **kwargs):
    """
    Print and log an error message (stderr and error level), using the logger set by set_print_logger.
    """
    print(f'[bold red]{message}[/bold red]', file=sys.stderr, **kwargs)
    if _print_logger is not None:
        _print_logger.error(message)

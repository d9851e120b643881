import json
import logging
import sys

from rich.logging import RichHandler

from common.app_setup import ContextFormatter, JsonFormatter, setup_logging


def _record(message, context=None):
    record = logging.LogRecord("servicehost.test", logging.INFO, __file__, 1, message, None, None)
    if context is not None:
        record.context = context
    return record


def test_json_formatter_merges_context():
    line = JsonFormatter().format(_record("Found integration", {"name": "slack", "version": "1.0.0"}))
    payload = json.loads(line)
    assert payload["message"] == "Found integration"
    assert payload["level"] == "info"
    assert payload["name"] == "slack"
    assert payload["version"] == "1.0.0"
    assert payload["logger"] == "servicehost.test"
    assert "pid" in payload
    assert "time" in payload


def test_json_formatter_renders_exceptions():
    try:
        raise RuntimeError("partner API down")
    except RuntimeError:
        record = _record("Unhandled rejection!")
        record.exc_info = sys.exc_info()
    payload = json.loads(JsonFormatter().format(record))
    assert payload["level"] == "info"
    assert "RuntimeError: partner API down" in payload["exception"]


def test_context_formatter_appends_fields():
    line = ContextFormatter("%(message)s").format(_record("Found service", {"name": "inv"}))
    assert line == "Found service name='inv'"


def test_setup_logging_production_uses_json(tmp_path):
    logger = setup_logging(environment="production", loglevel="debug")
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JsonFormatter)


def test_setup_logging_development_uses_rich():
    logger = setup_logging(environment="development")
    assert isinstance(logger.handlers[0], RichHandler)


def test_setup_logging_file_only(tmp_path):
    logfile = tmp_path / "logs" / "cli.log"
    logger = setup_logging(app_name="cli", logfile=str(logfile), console=False)
    assert len(logger.handlers) == 1
    logging.getLogger("servicehost.test").info("written", extra={"context": {"k": 1}})
    logger.handlers[0].flush()
    assert "written k=1" in logfile.read_text()

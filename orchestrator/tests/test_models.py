import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import ModuleType, SimpleNamespace

import pytest

from orchestrator.models import (
    IntegrationShape,
    OrchestratorState,
    RegisteredService,
    ServiceAdapter,
    UnregisteredService,
    as_startable,
    classify,
    validate_shape,
)


async def _noop():
    return None


def registered(name="svc"):
    return SimpleNamespace(start=_noop, stop=_noop, definition=SimpleNamespace(name=name))


class Exploding:
    @property
    def start(self):
        raise RuntimeError("boom")

    @property
    def name(self):
        raise TypeError("no name")


def test_registered_object():
    value = registered("inv")
    result = classify(value, source=Path("a_service.py"))
    assert isinstance(result, RegisteredService)
    assert result.service is value
    assert result.name == "inv"
    assert result.source == Path("a_service.py")


def test_registered_mapping_gets_attribute_access():
    value = {"start": _noop, "stop": _noop, "definition": {"name": "dict"}}
    result = classify(value)
    assert isinstance(result, RegisteredService)
    assert isinstance(result.service, ServiceAdapter)
    assert result.service.wrapped is value
    assert result.name == "dict"
    assert result.service.definition.name == "dict"
    assert asyncio.run(result.service.start()) is None
    assert result.service.stop is _noop


def test_registered_object_with_mapping_definition():
    value = SimpleNamespace(start=_noop, stop=_noop, definition={"name": "half", "functions": ["f"]})
    result = classify(value)
    assert result.name == "half"
    assert result.service.definition.functions == ["f"]
    assert result.service.start is _noop


def test_as_startable_keeps_attribute_objects():
    value = registered("plain")
    assert as_startable(value) is value


def test_unregistered_mapping():
    result = classify({"name": "inv", "functions": ["f1", "f2"]})
    assert result == UnregisteredService(name="inv", functions=["f1", "f2"])
    assert result.as_definition() == {"name": "inv", "functions": ["f1", "f2"]}


def test_unregistered_object():
    result = classify(SimpleNamespace(name="objects", functions=[]))
    assert isinstance(result, UnregisteredService)


def test_registered_wins_when_both_shapes_match():
    value = registered("both")
    value.name = "both"
    value.functions = []
    assert isinstance(classify(value), RegisteredService)


@pytest.mark.parametrize("value", [
    None,
    42,
    "service",
    [],
    {},
    {"name": "no functions"},
    {"name": 3, "functions": []},
    {"name": "inv", "functions": "not a list"},
    {"start": "not callable", "stop": _noop, "definition": {"name": "x"}},
    {"start": _noop, "stop": _noop, "definition": {}},
    SimpleNamespace(start=_noop, stop=_noop),
    classify,
    Exploding(),
])
def test_non_services_are_rejected_without_raising(value):
    assert classify(value) is None


def test_integration_shape_reports_errors():
    parsed, errors = validate_shape(IntegrationShape, {"type": "something-else", "name": "x", "version": "1"})
    assert parsed is None
    assert {e["loc"][0] for e in errors} == {"type", "initialize"}


def test_integration_shape_accepts_module_like_object():
    module = SimpleNamespace(type="inferable-integration", name="slack", version="1.2.0", initialize=_noop)
    parsed, errors = validate_shape(IntegrationShape, module)
    assert errors == []
    assert parsed.name == "slack"


def test_integration_shape_accepts_a_module():
    module = ModuleType("inferable_module_level")
    module.type = "inferable-integration"
    module.name = "module-level"
    module.version = "0.2.0"
    module.initialize = _noop
    parsed, errors = validate_shape(IntegrationShape, module)
    assert errors == []
    assert parsed.name == "module-level"


def test_module_missing_fields_is_a_mismatch():
    module = ModuleType("inferable_partial")
    module.name = "partial"
    parsed, errors = validate_shape(IntegrationShape, module)
    assert parsed is None
    assert {e["loc"][0] for e in errors} == {"type", "version", "initialize"}


def test_uptime_is_never_negative():
    start = datetime.now(timezone.utc)
    state = OrchestratorState(start_time=start)
    assert state.uptime_seconds(start + timedelta(seconds=2.5)) == 2.5
    assert state.uptime_seconds(start - timedelta(seconds=1)) == 0.0

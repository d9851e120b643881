import asyncio
import json

import httpx
import pytest
from pydantic import BaseModel, ValidationError

from runtime import RegisteredService, RuntimeClient, ServiceDefinition, Startable


class EchoInput(BaseModel):
    text: str


def echo(payload):
    return payload["text"]


async def shout(payload):
    return payload["text"].upper()


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def client(requests_seen):
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        if request.url.path == "/machines":
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404)

    return RuntimeClient("sk_cluster_secret", "http://control.test/", transport=httpx.MockTransport(handler), machine_id="m-1")


def test_service_binds_mapping_definition(client):
    service = client.service({
        "name": "echo",
        "functions": [{"name": "echo", "func": echo, "schema": {"input": EchoInput}}],
    })
    assert isinstance(service, RegisteredService)
    assert isinstance(service, Startable)
    assert service.definition.name == "echo"
    assert service.definition.function_names() == ["echo"]
    assert service.definition.functions[0].input_model is EchoInput


def test_service_binds_object_definition(client):
    class Definition:
        name = "objects"
        functions = []

    service = client.service(Definition())
    assert service.definition.name == "objects"


def test_service_binds_bare_callables(client):
    def lookup(payload):
        """Look an item up."""
        return payload

    service = client.service({"name": "plain", "functions": [echo, shout, lookup]})
    assert service.definition.function_names() == ["echo", "shout", "lookup"]
    assert service.definition.functions[2].description == "Look an item up."
    assert asyncio.run(service.invoke("shout", {"text": "hi"})) == "HI"


def test_service_rejects_invalid_definition(client):
    with pytest.raises(ValidationError):
        client.service({"name": "", "functions": []})


def test_register_adds_functions(client):
    service = client.service(ServiceDefinition(name="echo"))
    service.register("echo", echo, description="Echoes", schema={"input": EchoInput}, config={"requiresApproval": True})
    function = service.definition.functions[0]
    assert function.description == "Echoes"
    assert function.config == {"requiresApproval": True}
    with pytest.raises(ValueError):
        service.register("echo", echo)


def test_start_announces_service(client, requests_seen):
    service = client.service({"name": "echo", "functions": [{"name": "echo", "func": echo, "schema": {"input": EchoInput}}]})

    async def scenario():
        await service.start()
        assert service.is_started
        await service.stop()

    asyncio.run(scenario())
    assert len(requests_seen) == 1
    request = requests_seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://control.test/machines"
    assert request.headers["authorization"] == "bearer sk_cluster_secret"
    assert request.headers["x-machine-id"] == "m-1"
    body = json.loads(request.content)
    assert body["service"] == "echo"
    assert body["functions"][0]["name"] == "echo"
    assert body["functions"][0]["input"]["properties"] == {"text": {"title": "Text", "type": "string"}}
    assert not service.is_started


def test_start_twice_fails_and_register_after_start_fails(client):
    service = client.service({"name": "echo", "functions": []})

    async def scenario():
        await service.start()
        try:
            with pytest.raises(RuntimeError):
                await service.start()
            with pytest.raises(RuntimeError):
                service.register("late", echo)
        finally:
            await service.stop()

    asyncio.run(scenario())


def test_start_failure_is_raised():
    runtime = RuntimeClient(
        "sk_cluster_secret",
        "http://control.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "unauthorized"})),
    )
    service = runtime.service({"name": "echo", "functions": []})
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(service.start())
    assert not service.is_started


def test_stop_without_start_is_a_noop(client):
    service = client.service({"name": "echo", "functions": []})
    asyncio.run(service.stop())


def test_invoke_validates_input(client):
    service = client.service({
        "name": "echo",
        "functions": [
            {"name": "echo", "func": echo, "schema": {"input": EchoInput}},
            {"name": "shout", "func": shout, "schema": {"input": EchoInput}},
        ],
    })
    assert asyncio.run(service.invoke("echo", {"text": "hi"})) == "hi"
    assert asyncio.run(service.invoke("shout", {"text": "hi"})) == "HI"
    with pytest.raises(ValidationError):
        asyncio.run(service.invoke("echo", {"text": 3}))
    with pytest.raises(KeyError):
        asyncio.run(service.invoke("missing"))

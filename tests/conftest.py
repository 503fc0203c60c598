"""Shared fixtures for skillsmith tests."""

import copy

import pytest
from aiohttp import web

from skillsmith.model import ModelClient, ModelReply
from skillsmith.orchestrator import ChatOrchestrator
from skillsmith.registry import SkillRegistry
from skillsmith.sessions import ConversationStore
from skillsmith.store import MemoryStore


class StubModel(ModelClient):
    """Scripted model for testing the orchestrator.

    Queued replies are returned in order (an Exception in the queue is raised
    instead); once the queue is empty the model echoes the last message.
    """

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls: list[dict] = []
        self.closed = False

    async def complete(self, messages, tools=None) -> ModelReply:
        self.calls.append({"messages": copy.deepcopy(messages), "tools": tools})
        if self.replies:
            reply = self.replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        return ModelReply(response=f"Echo: {messages[-1]['content']}")

    async def close(self) -> None:
        self.closed = True


def tool_call(name: str, arguments, call_id: str | None = "call_1") -> dict:
    call = {"type": "function", "function": {"name": name, "arguments": arguments}}
    if call_id:
        call["id"] = call_id
    return call


PETSTORE = {
    "openapi": "3.0.0",
    "info": {"title": "Petstore", "version": "1.0.0", "description": "Pets for sale"},
    "servers": [{"url": "https://petstore.example.com/v1"}],
    "paths": {
        "/pets": {
            "get": {
                "operationId": "listPets",
                "summary": "List all pets",
                "parameters": [
                    {"name": "limit", "in": "query", "schema": {"type": "integer"}},
                    {"name": "tag", "in": "query", "description": "Filter by tag"},
                ],
            },
            "post": {
                "operationId": "createPet",
                "summary": "Create a pet",
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"type": "object"}}},
                },
            },
        },
        "/pets/{petId}": {
            "parameters": [
                {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}},
            ],
            "get": {"operationId": "showPetById", "summary": "Info for a specific pet"},
            "delete": {"description": "Remove a pet"},
        },
    },
}

SWAGGER = {
    "swagger": "2.0",
    "info": {"title": "Weather", "version": "2"},
    "host": "api.weather.example",
    "basePath": "/v2",
    "schemes": ["http"],
    "paths": {
        "/forecast/{city}": {
            "get": {
                "operationId": "getForecast",
                "parameters": [
                    {"name": "city", "in": "path", "required": True, "type": "string"},
                    {"name": "days", "in": "query", "type": "integer"},
                ],
            },
        },
    },
}


def petstore_at(base_url: str) -> dict:
    spec = copy.deepcopy(PETSTORE)
    spec["servers"] = [{"url": base_url}]
    return spec


def upstream_app(records: list) -> web.Application:
    """A fake third-party API that records every request it receives."""

    async def handler(request: web.Request) -> web.Response:
        records.append({
            "method": request.method,
            "path": request.path,
            "query": dict(request.query),
            "query_string": request.query_string,
            "headers": dict(request.headers),
            "body": await request.text(),
        })
        if request.path.endswith("/missing"):
            return web.json_response({"message": "no such thing"}, status=404)
        if request.path.endswith("/text"):
            return web.Response(text="plain words")
        return web.json_response({"ok": True, "path": request.path})

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handler)
    return app


@pytest.fixture
def petstore_spec():
    return copy.deepcopy(PETSTORE)


@pytest.fixture
def swagger_spec():
    return copy.deepcopy(SWAGGER)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def registry(store):
    return SkillRegistry(store)


@pytest.fixture
def sessions(store):
    return ConversationStore(store)


@pytest.fixture
def stub_model():
    return StubModel()


@pytest.fixture
def orchestrator(registry, sessions, stub_model):
    return ChatOrchestrator(registry, sessions, stub_model)

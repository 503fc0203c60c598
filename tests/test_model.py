"""Tests for the OpenAI-compatible model client."""

from types import SimpleNamespace

import pytest

from skillsmith.model import OpenAIModelClient, describe_error


class _FakeCompletions:
    def __init__(self, completion):
        self.completion = completion
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return self.completion


def _completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    usage = SimpleNamespace(prompt_tokens=10, completion_tokens=2)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def _client(completion) -> tuple[OpenAIModelClient, _FakeCompletions]:
    client = OpenAIModelClient(model="test-model", api_key="k")
    completions = _FakeCompletions(completion)
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client, completions


class TestComplete:
    @pytest.mark.asyncio
    async def test_plain_reply_without_tools(self):
        client, completions = _client(_completion(content="Hello!"))
        reply = await client.complete([{"role": "user", "content": "hi"}])
        assert reply.response == "Hello!"
        assert reply.tool_calls == []
        assert completions.kwargs == {"model": "test-model", "messages": [{"role": "user", "content": "hi"}]}

    @pytest.mark.asyncio
    async def test_tools_enable_auto_choice(self):
        client, completions = _client(_completion(content="ok"))
        tools = [{"type": "function", "function": {"name": "f", "parameters": {}}}]
        await client.complete([], tools)
        assert completions.kwargs["tools"] == tools
        assert completions.kwargs["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_tool_calls_are_mapped(self):
        call = SimpleNamespace(
            id="call_9",
            function=SimpleNamespace(name="listPets", arguments='{"limit": 2}'),
        )
        client, _ = _client(_completion(content=None, tool_calls=[call]))
        reply = await client.complete([])
        assert reply.response == ""
        assert reply.tool_calls == [{
            "id": "call_9",
            "type": "function",
            "function": {"name": "listPets", "arguments": '{"limit": 2}'},
        }]

    @pytest.mark.asyncio
    async def test_no_choices(self):
        client, _ = _client(SimpleNamespace(choices=[], usage=None))
        reply = await client.complete([])
        assert reply.response == ""


class TestDescribeError:
    def test_plain_exception(self):
        assert describe_error(RuntimeError("boom")) == "boom"

    def test_empty_exception_uses_type(self):
        assert describe_error(TimeoutError()) == "TimeoutError"

    def test_message_attribute(self):
        exc = Exception("raw")
        exc.message = "friendly"
        assert describe_error(exc) == "friendly"

    def test_none_and_strings(self):
        assert describe_error(None) == "Unknown error"
        assert describe_error("already text") == "already text"

"""Language-model inference: messages + tool schemas → assistant reply."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("skillsmith.model")

DEFAULT_MODEL = "meta-llama/llama-3.3-70b-instruct"


@dataclass
class ModelReply:
    response: str = ""
    tool_calls: list[dict] = field(default_factory=list)


class ModelClient(ABC):
    """The one call the orchestrator needs from a model provider."""

    @abstractmethod
    async def complete(self, messages: list[dict], tools: list[dict] | None = None) -> ModelReply:
        ...

    async def close(self) -> None:
        pass


def describe_error(exc: Any) -> str:
    if exc is None:
        return "Unknown error"
    if isinstance(exc, str):
        return exc
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    text = str(exc)
    return text or type(exc).__name__


class OpenAIModelClient(ModelClient):
    """Chat completions against any OpenAI-compatible endpoint."""

    def __init__(self, model: str = DEFAULT_MODEL, api_key: str = "", api_base: str = ""):
        from openai import AsyncOpenAI

        kwargs = {"api_key": api_key or "not-set"}
        if api_base:
            kwargs["base_url"] = api_base
        self.model = model
        self._client = AsyncOpenAI(**kwargs)

    async def complete(self, messages: list[dict], tools: list[dict] | None = None) -> ModelReply:
        kwargs: dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        completion = await self._client.chat.completions.create(**kwargs)
        if not completion.choices:
            return ModelReply()
        message = completion.choices[0].message

        tool_calls = []
        for call in message.tool_calls or []:
            arguments = call.function.arguments
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments or {})
            tool_calls.append({
                "id": call.id,
                "type": "function",
                "function": {"name": call.function.name, "arguments": arguments},
            })

        usage = getattr(completion, "usage", None)
        if usage:
            logger.debug(
                "model=%s prompt_tokens=%s completion_tokens=%s",
                self.model, usage.prompt_tokens, usage.completion_tokens,
            )
        return ModelReply(response=message.content or "", tool_calls=tool_calls)

    async def close(self) -> None:
        await self._client.close()

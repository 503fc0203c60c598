"""Chat orchestration: context assembly, tool gating, the tool-call round trip
and persistence of each turn.

A turn runs in two phases so the HTTP layer can reject bad input and surface
storage failures before it commits to a streamed response:

    prepare_turn   validate → persist user message → load history + skills
                   → system prompt → token budget → tool gating
    stream_reply   model call → tool round → follow-up model call
                   → content events → persist assistant message → done
"""

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import aiohttp

from .budget import MAX_HISTORY_CHARS, MAX_MODEL_TOKENS, fit_token_budget, trim_history
from .events import StreamEvent
from .gating import should_offer_tools, should_run_smoke_suite
from .invoker import execute_skill
from .log import request_logger
from .model import ModelClient, describe_error
from .prompts import build_system_prompt, format_scenario_summary
from .registry import BoundSkill, SkillRegistry
from .sessions import ConversationStore
from .skills import skills_to_tool_schemas

DEFAULT_SESSION_ID = "chat-session"
DEFAULT_USER_ID = "default"

MESSAGE_REQUIRED = "Message is required and must be a non-empty string"
NO_RESPONSE = "No response"
APOLOGY = (
    "I apologize, but I encountered an error while processing your request. "
    "The AI service is currently unavailable or encountered an issue: {error}"
)


@dataclass
class ChatRequest:
    message: str
    session_id: str = DEFAULT_SESSION_ID
    user_id: str = DEFAULT_USER_ID
    persona: str | None = None
    auto_execute_tools: bool = True


@dataclass
class ChatTurn:
    request: ChatRequest
    messages: list[dict]
    skills: list[BoundSkill] = field(default_factory=list)
    tool_schemas: list[dict] = field(default_factory=list)
    dropped_messages: int = 0
    scenario_results: list[dict] | None = None
    scenario_summary: str | None = None

    @property
    def offer_tools(self) -> bool:
        return bool(self.tool_schemas)


# ---------------------------------------------------------------------------
# Tool-call helpers
# ---------------------------------------------------------------------------


def _normalize_tool_call(call: dict, index: int) -> tuple[dict, object]:
    """Return an OpenAI-shaped copy of ``call`` plus its raw arguments.

    Providers differ: some nest name/arguments under ``function``, some put
    them at the top level, and arguments may be a string or an object.
    Entries that are not objects come back with an empty name.
    """
    if not isinstance(call, dict):
        normalized = {
            "id": f"call_{index}",
            "type": "function",
            "function": {"name": "", "arguments": "{}"},
        }
        return normalized, None

    function = call.get("function")
    if not isinstance(function, dict):
        function = {}
    name = function.get("name") or call.get("name") or ""
    raw = function.get("arguments") or call.get("arguments")

    if isinstance(raw, str):
        arguments = raw
    else:
        arguments = json.dumps(raw or {})

    normalized = {
        "id": call.get("id") or f"call_{index}",
        "type": call.get("type") or "function",
        "function": {"name": name, "arguments": arguments},
    }
    return normalized, raw


def _parse_arguments(raw: object) -> dict:
    if isinstance(raw, str):
        parsed = json.loads(raw)
        if not isinstance(parsed, dict):
            raise ValueError("arguments must be a JSON object")
        return parsed
    if isinstance(raw, dict):
        return raw
    return {}


def _tool_message(record: dict) -> dict:
    if record["success"]:
        content = json.dumps(record.get("result"), default=str)
    else:
        content = f"Error: {record.get('error')}"
    return {"role": "tool", "content": content, "tool_call_id": record["toolCallId"]}


def _find_skill(skills: list[BoundSkill], name: str) -> BoundSkill | None:
    for bound in skills:
        if bound.name == name:
            return bound
    return None


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ChatOrchestrator:
    def __init__(
        self,
        registry: SkillRegistry,
        sessions: ConversationStore,
        model: ModelClient,
        *,
        http: aiohttp.ClientSession | None = None,
        max_history_chars: int = MAX_HISTORY_CHARS,
        max_model_tokens: int = MAX_MODEL_TOKENS,
    ):
        self.registry = registry
        self.sessions = sessions
        self.model = model
        self.http = http
        self.max_history_chars = max_history_chars
        self.max_model_tokens = max_model_tokens

    # --- Phase 1 ---

    async def prepare_turn(
        self, request: ChatRequest, log: logging.LoggerAdapter | None = None
    ) -> ChatTurn:
        log = log or request_logger(request.session_id, request.user_id)

        if not isinstance(request.message, str) or not request.message.strip():
            raise ValueError(MESSAGE_REQUIRED)
        message = request.message.strip()

        await self.sessions.append(request.session_id, "user", message)
        stored = await self.sessions.history(request.session_id)
        # The last entry is the message just appended; it is sent separately
        prior = [{"role": m["role"], "content": m["content"]} for m in stored[:-1]]
        history = trim_history(prior, self.max_history_chars)

        skills = await self.registry.all_skills(request.user_id)
        log.info("User has %d skills", len(skills))

        prompt = message
        scenario_results = scenario_summary = None
        if should_run_smoke_suite(message):
            scenario_results = await self.sessions.run_scenarios(request.session_id, session=self.http)
            scenario_summary = format_scenario_summary(scenario_results)
            prompt += f"\n\nSmoke test results:\n{scenario_summary}"

        system = {"role": "system", "content": build_system_prompt(request.persona, skills)}
        messages, dropped = fit_token_budget(
            [system], history, {"role": "user", "content": prompt}, self.max_model_tokens
        )
        if dropped:
            log.info("Dropped %d history messages to fit the token budget", dropped)

        tool_schemas: list[dict] = []
        if request.auto_execute_tools and skills and should_offer_tools(message, skills):
            tool_schemas = skills_to_tool_schemas([b.skill for b in skills])
            names = [t["function"]["name"] for t in tool_schemas]
            if len(set(names)) != len(names):
                log.warning("Duplicate skill names across APIs; the first registered wins on dispatch")
        log.info("Offering %d tools", len(tool_schemas))

        return ChatTurn(
            request=request,
            messages=messages,
            skills=skills,
            tool_schemas=tool_schemas,
            dropped_messages=dropped,
            scenario_results=scenario_results,
            scenario_summary=scenario_summary,
        )

    # --- Phase 2 ---

    async def _execute_tool_call(
        self, call: dict, raw_arguments: object, skills: list[BoundSkill], log
    ) -> dict:
        name = call["function"]["name"]
        record = {"skill": name, "toolCallId": call["id"]}

        if not name:
            log.warning("Model returned a tool call without a function name")
            return {**record, "success": False, "error": "Malformed tool call: missing function name"}

        try:
            arguments = _parse_arguments(raw_arguments)
        except (ValueError, TypeError) as exc:
            log.warning("Bad arguments for %s: %s", name, exc)
            return {**record, "success": False, "error": f"Failed to parse arguments: {exc}"}

        bound = _find_skill(skills, name)
        if bound is None:
            log.warning("Model requested unknown skill %s", name)
            return {**record, "success": False, "error": f"Skill {name} not found in user's registered skills"}

        log.info("Executing skill %s [%s]", name, bound.api_name)
        outcome = await execute_skill(bound.skill, arguments, bound.api_key, session=self.http)
        if outcome["success"]:
            return {**record, "success": True, "result": outcome.get("result")}
        return {**record, "success": False, "error": outcome.get("error")}

    async def stream_reply(
        self,
        turn: ChatTurn,
        log: logging.LoggerAdapter | None = None,
        *,
        chunk_content: bool = True,
    ) -> AsyncIterator[StreamEvent]:
        """Run the model/tool rounds for a prepared turn and yield its events.

        The final ``done`` event carries ``{response, toolExecutions?, error?}``
        in its metadata and is only emitted once the assistant message has
        been persisted.
        """
        request = turn.request
        log = log or request_logger(request.session_id, request.user_id)

        if turn.scenario_results is not None:
            yield StreamEvent(
                type="scenario_results",
                data={"results": turn.scenario_results, "summary": turn.scenario_summary},
            )

        executions: list[dict] = []
        error: str | None = None
        final = NO_RESPONSE

        try:
            reply = await self.model.complete(turn.messages, turn.tool_schemas or None)
        except Exception as exc:
            log.error("Model call failed: %s", exc)
            reply = None
            error = describe_error(exc)

        if reply is not None:
            final = reply.response or NO_RESPONSE

            if reply.tool_calls:
                yield StreamEvent(type="executing_skills", data={"count": len(reply.tool_calls)})

                tool_calls = []
                for index, call in enumerate(reply.tool_calls):
                    normalized, raw_arguments = _normalize_tool_call(call, index)
                    tool_calls.append(normalized)
                    record = await self._execute_tool_call(normalized, raw_arguments, turn.skills, log)
                    executions.append(record)
                    yield StreamEvent(type="skill_result", data=record)

                follow_up = [
                    *turn.messages,
                    {"role": "assistant", "content": reply.response or "", "tool_calls": tool_calls},
                    *(_tool_message(r) for r in executions),
                ]
                try:
                    second = await self.model.complete(follow_up)
                    final = second.response or final
                except Exception as exc:
                    log.error("Follow-up model call failed: %s", exc)
                    error = describe_error(exc)

        if error is not None:
            final = APOLOGY.format(error=error)

        if chunk_content:
            for char in final:
                yield StreamEvent(type="content", data=char)
        else:
            yield StreamEvent(type="content", data=final)

        await self.sessions.append(
            request.session_id,
            "assistant",
            final,
            {"skillExecutions": executions} if executions else None,
        )

        result: dict = {"response": final}
        if executions:
            result["toolExecutions"] = executions
        if error is not None:
            result["error"] = {"type": "ai-unavailable", "message": error}
        yield StreamEvent(type="done", data=final, metadata=result)

    async def run_turn(
        self, request: ChatRequest, log: logging.LoggerAdapter | None = None
    ) -> dict:
        """Non-streaming turn. Returns ``{response, toolExecutions?, error?}``."""
        turn = await self.prepare_turn(request, log)
        result: dict = {}
        async for event in self.stream_reply(turn, log, chunk_content=False):
            if event.type == "done":
                result = event.metadata
        return result

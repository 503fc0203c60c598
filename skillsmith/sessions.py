"""Conversation history, saved smoke-test scenarios and session metadata."""

import logging
import time
from datetime import datetime, timezone

import aiohttp

from .budget import MAX_PERSISTED_MESSAGES, cap_messages
from .store import KeyedLocks, KeyValueStore

logger = logging.getLogger("skillsmith.sessions")

ROLES = ("user", "assistant", "system")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConversationStore:
    """Append-only message history per session, capped at ``max_messages``."""

    def __init__(
        self,
        store: KeyValueStore,
        max_messages: int = MAX_PERSISTED_MESSAGES,
        locks: KeyedLocks | None = None,
    ):
        self.store = store
        self.max_messages = max_messages
        self._locks = locks or KeyedLocks()

    @staticmethod
    def _key(session_id: str, part: str) -> str:
        return f"session:{session_id}:{part}"

    # --- History ---

    async def append(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: dict | None = None,
    ) -> dict:
        if role not in ROLES:
            raise ValueError(f"invalid role: {role!r}")
        if not isinstance(content, str):
            raise ValueError("message content must be a string")

        message = {"role": role, "content": content, "timestamp": _now()}
        if metadata:
            message["metadata"] = metadata

        key = self._key(session_id, "history")
        async with self._locks(key):
            history = await self.store.get(key, [])
            history.append(message)
            await self.store.put(key, cap_messages(history, self.max_messages))
        return message

    async def history(self, session_id: str) -> list[dict]:
        return await self.store.get(self._key(session_id, "history"), [])

    async def clear(self, session_id: str) -> None:
        await self.store.delete(self._key(session_id, "history"))

    async def list_sessions(self) -> list[str]:
        suffix = ":history"
        entries = await self.store.list("session:")
        return [
            key[len("session:"):-len(suffix)] for key in entries if key.endswith(suffix)
        ]

    # --- Scenarios ---

    async def add_scenario(self, session_id: str, scenario: dict) -> dict:
        if not scenario.get("name") or not scenario.get("url"):
            raise ValueError("scenario requires 'name' and 'url'")
        entry = {"method": "GET", **scenario, "createdAt": _now()}
        entry["method"] = str(entry["method"]).upper()

        key = self._key(session_id, "scenarios")
        async with self._locks(key):
            scenarios = await self.store.get(key, [])
            scenarios.append(entry)
            await self.store.put(key, scenarios)
        return entry

    async def list_scenarios(self, session_id: str) -> list[dict]:
        return await self.store.get(self._key(session_id, "scenarios"), [])

    async def delete_scenario(self, session_id: str, index: int) -> bool:
        key = self._key(session_id, "scenarios")
        async with self._locks(key):
            scenarios = await self.store.get(key, [])
            if not 0 <= index < len(scenarios):
                return False
            scenarios.pop(index)
            await self.store.put(key, scenarios)
        return True

    async def run_scenarios(
        self, session_id: str, *, session: aiohttp.ClientSession | None = None
    ) -> list[dict]:
        """Replay every saved scenario once and record the outcome on each."""
        key = self._key(session_id, "scenarios")
        async with self._locks(key):
            scenarios = await self.store.get(key, [])
            if not scenarios:
                return []

            if session is not None:
                results = [await _run_scenario(session, s) for s in scenarios]
            else:
                async with aiohttp.ClientSession() as http:
                    results = [await _run_scenario(http, s) for s in scenarios]

            ran_at = _now()
            for scenario, result in zip(scenarios, results):
                scenario["lastRunAt"] = ran_at
                scenario["lastStatus"] = result.get("status")
                scenario["lastDurationMs"] = result.get("durationMs")
                scenario["lastError"] = result.get("error")
            await self.store.put(key, scenarios)

        logger.info(
            "Smoke suite for %s: %d/%d passed",
            session_id, sum(r["success"] for r in results), len(results),
        )
        return results

    # --- Metadata ---

    async def set_metadata(self, session_id: str, key: str, value) -> None:
        await self.store.put(self._key(session_id, f"meta:{key}"), value)

    async def get_metadata(self, session_id: str, key: str, default=None):
        return await self.store.get(self._key(session_id, f"meta:{key}"), default)


async def _run_scenario(http: aiohttp.ClientSession, scenario: dict) -> dict:
    name = scenario.get("name", "")
    expected = scenario.get("expectedStatus")
    body = scenario.get("body")
    kwargs = {"headers": scenario.get("headers") or None}
    if isinstance(body, (dict, list)):
        kwargs["json"] = body
    elif body is not None:
        kwargs["data"] = str(body)

    started = time.perf_counter()
    try:
        async with http.request(scenario.get("method", "GET"), scenario["url"], **kwargs) as resp:
            await resp.read()
            status = resp.status
    except Exception as exc:
        return {
            "name": name,
            "success": False,
            "durationMs": int((time.perf_counter() - started) * 1000),
            "error": str(exc) or type(exc).__name__,
        }

    duration_ms = int((time.perf_counter() - started) * 1000)
    success = status == expected if isinstance(expected, int) else 200 <= status < 300
    result = {"name": name, "success": success, "status": status, "durationMs": duration_ms}
    if not success:
        result["error"] = f"expected status {expected}, got {status}" if isinstance(expected, int) else f"HTTP {status}"
    return result

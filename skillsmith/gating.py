"""Heuristics that decide what a chat turn should do before the model sees it."""

import re
from collections.abc import Iterable, Mapping

_GREETING_MAX_CHARS = 60

_GREETING_PATTERNS = [
    re.compile(r"^(hi|hello|hey|hola|yo|howdy)\b"),
    re.compile(r"^(good\s+(morning|afternoon|evening|night))\b"),
    re.compile(r"^how are you\b"),
    re.compile(r"^what('?| i)s up\b"),
    re.compile(r"^(hi|hello|hey) there\b"),
]

_TOOL_KEYWORDS = (
    "api",
    "weather",
    "forecast",
    "temperature",
    "humidity",
    "pokemon",
    "poke",
    "post",
    "posts",
    "fetch",
    "retrieve",
    "request",
    "http",
    "endpoint",
    "call ",
    "call the",
    "get ",
    "get the",
    "show ",
    "list ",
    "data",
    "skill",
    "openapi",
    "spec",
    "register",
    "delete",
    "update",
    "upload",
)

_SMOKE_SUITE = re.compile(r"\b(re)?run smoke suite\b|\brun smoke tests\b")


def _skill_terms(skill) -> list[str]:
    if isinstance(skill, Mapping):
        values = [skill.get("name"), skill.get("description"), skill.get("apiName")]
    else:
        values = [
            getattr(skill, "name", None),
            getattr(skill, "description", None),
            getattr(skill, "api_name", None),
        ]
    return [v.lower() for v in values if v]


def is_greeting(normalized: str) -> bool:
    return len(normalized) <= _GREETING_MAX_CHARS and any(
        p.search(normalized) for p in _GREETING_PATTERNS
    )


def should_offer_tools(message: str, skills: Iterable = ()) -> bool:
    """Whether tool schemas are worth attaching for this user message.

    Greetings never get tools; explicit API vocabulary or a mention of a
    registered skill or API does. Whether any skill exists is checked by the
    caller.
    """
    if not message:
        return False
    normalized = message.lower().strip()
    if not normalized:
        return False

    if is_greeting(normalized):
        return False

    if any(keyword in normalized for keyword in _TOOL_KEYWORDS):
        return True

    for skill in skills:
        if any(term in normalized for term in _skill_terms(skill)):
            return True
    return False


def should_run_smoke_suite(message: str) -> bool:
    if not message:
        return False
    return bool(_SMOKE_SUITE.search(message.lower()))

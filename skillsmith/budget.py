"""History caps and token-budget trimming."""

import math

MAX_PERSISTED_MESSAGES = 100
MAX_HISTORY_CHARS = 50_000
MAX_MODEL_TOKENS = 120_000
CHARS_PER_TOKEN = 4
# Extra tokens freed when over budget so the next turn does not trim again
TOKEN_HEADROOM = 1_000


def _chars(message: dict) -> int:
    return len(message.get("content") or "")


def cap_messages(messages: list, limit: int = MAX_PERSISTED_MESSAGES) -> list:
    """Keep only the newest ``limit`` messages."""
    if len(messages) <= limit:
        return messages
    return messages[-limit:]


def estimate_tokens(messages: list[dict]) -> int:
    return math.ceil(sum(_chars(m) for m in messages) / CHARS_PER_TOKEN)


def _drop_oldest(history: list[dict], chars_to_remove: int) -> list[dict]:
    removed = 0
    kept = []
    for message in history:
        if removed >= chars_to_remove:
            kept.append(message)
        else:
            removed += _chars(message)
    return kept


def trim_history(history: list[dict], max_chars: int = MAX_HISTORY_CHARS) -> list[dict]:
    """Drop whole messages, oldest first, until history fits ``max_chars``."""
    if not history:
        return []
    total = sum(_chars(m) for m in history)
    if total <= max_chars:
        return list(history)
    return _drop_oldest(history, total - max_chars)


def fit_token_budget(
    system: list[dict],
    history: list[dict],
    user_message: dict,
    max_tokens: int = MAX_MODEL_TOKENS,
) -> tuple[list[dict], int]:
    """Assemble ``system + history + user_message`` within ``max_tokens``.

    Only history is trimmed. Returns the message list and the number of
    history messages dropped.
    """
    messages = [*system, *history, user_message]
    estimated = estimate_tokens(messages)
    if estimated <= max_tokens:
        return messages, 0

    chars_to_remove = (estimated - max_tokens + TOKEN_HEADROOM) * CHARS_PER_TOKEN
    kept = _drop_oldest(history, chars_to_remove)
    return [*system, *kept, user_message], len(history) - len(kept)

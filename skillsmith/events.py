"""Server-sent events emitted while a chat turn is processed."""

import json
from dataclasses import dataclass, field
from typing import Any

DONE_SENTINEL = b"data: [DONE]\n\n"


@dataclass
class StreamEvent:
    """A single event in an SSE chat stream.

    Types:
        scenario_results   smoke-suite results (data = {results, summary})
        executing_skills   the model requested tools (data = {count})
        skill_result       one tool execution finished (data = execution record)
        content            a chunk of the final answer (data = text)
        done               turn complete; metadata carries the final payload
        error              the stream failed unexpectedly (data = message)
    """

    type: str
    data: Any = None
    metadata: dict = field(default_factory=dict)


def encode_sse(event: StreamEvent) -> bytes:
    if event.type == "done":
        return DONE_SENTINEL
    payload = {"type": event.type, "data": event.data}
    return f"data: {json.dumps(payload, default=str)}\n\n".encode()

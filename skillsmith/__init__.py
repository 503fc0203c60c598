"""skillsmith: turn OpenAPI specs into chat skills for a language model."""

from importlib.metadata import version as _pkg_version

from .events import StreamEvent
from .model import ModelClient, ModelReply
from .orchestrator import ChatOrchestrator, ChatRequest
from .registry import SkillRegistry
from .sessions import ConversationStore
from .skills import Skill, parse_spec_to_skills, skills_to_tool_schemas

__version__ = _pkg_version("skillsmith")
__all__ = [
    "ChatOrchestrator",
    "ChatRequest",
    "ConversationStore",
    "ModelClient",
    "ModelReply",
    "Skill",
    "SkillRegistry",
    "StreamEvent",
    "parse_spec_to_skills",
    "skills_to_tool_schemas",
    "__version__",
]

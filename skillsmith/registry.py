"""Per-user registry of APIs and the skills compiled from their specs."""

import base64
import binascii
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from .skills import ParsedSpec, Skill
from .store import KeyedLocks, KeyValueStore

logger = logging.getLogger("skillsmith.registry")


def obfuscate_key(api_key: str | None) -> str:
    """Base64-encode an API key for storage.

    This is reversible without any secret. It keeps keys out of casual view in
    the store; it is not encryption.
    """
    if not api_key:
        return ""
    return base64.b64encode(api_key.encode()).decode()


def reveal_key(stored: str | None) -> str:
    if not stored:
        return ""
    try:
        return base64.b64decode(stored.encode(), validate=True).decode()
    except (binascii.Error, UnicodeDecodeError):
        logger.warning("Stored API key is not valid base64; ignoring it")
        return ""


@dataclass
class RegisteredAPI:
    api_name: str
    base_url: str
    skills: list[Skill]
    encrypted_api_key: str = ""
    registered_at: str = ""
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "apiName": self.api_name,
            "baseUrl": self.base_url,
            "encryptedApiKey": self.encrypted_api_key,
            "skills": [s.to_dict() for s in self.skills],
            "registeredAt": self.registered_at,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RegisteredAPI":
        return cls(
            api_name=data["apiName"],
            base_url=data.get("baseUrl", ""),
            skills=[Skill.from_dict(s) for s in data.get("skills", [])],
            encrypted_api_key=data.get("encryptedApiKey", ""),
            registered_at=data.get("registeredAt", ""),
            metadata=data.get("metadata") or {},
        )

    def summary(self) -> dict:
        return {
            "apiName": self.api_name,
            "baseUrl": self.base_url,
            "skillCount": len(self.skills),
            "skillNames": [s.name for s in self.skills],
            "registeredAt": self.registered_at,
            "metadata": self.metadata,
        }


@dataclass
class BoundSkill:
    """A skill flattened out of its owning API, ready for dispatch."""

    skill: Skill
    api_name: str
    encrypted_api_key: str = ""

    @property
    def name(self) -> str:
        return self.skill.name

    @property
    def description(self) -> str:
        return self.skill.description

    @property
    def api_key(self) -> str:
        return reveal_key(self.encrypted_api_key)


class SkillRegistry:
    """Stores one record per user at ``user:{user_id}``."""

    def __init__(self, store: KeyValueStore, locks: KeyedLocks | None = None):
        self.store = store
        self._locks = locks or KeyedLocks()

    @staticmethod
    def _key(user_id: str) -> str:
        return f"user:{user_id}"

    async def _load(self, user_id: str) -> dict:
        record = await self.store.get(self._key(user_id))
        return record or {"userId": user_id, "apis": {}}

    async def register(
        self,
        user_id: str,
        api_name: str,
        parsed: ParsedSpec,
        api_key: str | None = None,
    ) -> dict:
        """Register (or fully replace) ``api_name`` for a user."""
        api = RegisteredAPI(
            api_name=api_name,
            base_url=parsed.base_url,
            skills=parsed.skills,
            encrypted_api_key=obfuscate_key(api_key),
            registered_at=datetime.now(timezone.utc).isoformat(),
            metadata=parsed.metadata,
        )
        async with self._locks(self._key(user_id)):
            record = await self._load(user_id)
            record["apis"][api_name] = api.to_dict()
            await self.store.put(self._key(user_id), record)

        logger.info("Registered %d skills for %s (user %s)", len(api.skills), api_name, user_id)
        return {
            "success": True,
            "message": f"Registered {len(api.skills)} skills for {api_name}",
            "skillCount": len(api.skills),
            "skillNames": [s.name for s in api.skills],
        }

    async def get_apis(self, user_id: str) -> dict[str, RegisteredAPI]:
        record = await self._load(user_id)
        return {
            name: RegisteredAPI.from_dict(data) for name, data in record["apis"].items()
        }

    async def get_api(self, user_id: str, api_name: str) -> RegisteredAPI | None:
        record = await self._load(user_id)
        data = record["apis"].get(api_name)
        return RegisteredAPI.from_dict(data) if data else None

    async def list_apis(self, user_id: str) -> list[dict]:
        apis = await self.get_apis(user_id)
        return [api.summary() for api in apis.values()]

    async def delete(self, user_id: str, api_name: str) -> bool:
        async with self._locks(self._key(user_id)):
            record = await self._load(user_id)
            if api_name not in record["apis"]:
                return False
            del record["apis"][api_name]
            await self.store.put(self._key(user_id), record)
        logger.info("Deleted %s (user %s)", api_name, user_id)
        return True

    async def all_skills(self, user_id: str) -> list[BoundSkill]:
        """Every skill of every API the user registered, in registration order.

        Names are only unique within one API, so the flattened list may hold
        duplicates; dispatch by name picks the first match.
        """
        bound = []
        for api in (await self.get_apis(user_id)).values():
            for skill in api.skills:
                bound.append(BoundSkill(
                    skill=replace(skill, base_url=api.base_url),
                    api_name=api.api_name,
                    encrypted_api_key=api.encrypted_api_key,
                ))
        return bound

"""Runtime settings: defaults, then config.json, then environment, then overrides."""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from .budget import MAX_HISTORY_CHARS, MAX_MODEL_TOKENS, MAX_PERSISTED_MESSAGES
from .model import DEFAULT_MODEL

logger = logging.getLogger("skillsmith.config")

DEFAULT_DATA_DIR = os.path.expanduser("~/.skillsmith")

# env var → settings field
ENV_VARS = {
    "SKILLSMITH_MODEL": "model",
    "OPENAI_API_KEY": "api_key",
    "SKILLSMITH_API_KEY": "api_key",
    "SKILLSMITH_API_BASE": "api_base",
    "SKILLSMITH_DATA_DIR": "data_dir",
}


@dataclass
class Settings:
    model: str = DEFAULT_MODEL
    api_key: str = ""
    api_base: str = ""
    data_dir: str = DEFAULT_DATA_DIR
    max_history_chars: int = MAX_HISTORY_CHARS
    max_model_tokens: int = MAX_MODEL_TOKENS
    max_messages: int = MAX_PERSISTED_MESSAGES


def load_settings(config_path: str | None = None, **overrides) -> Settings:
    """Build settings for one process.

    ``config_path`` defaults to ``{data_dir}/config.json``; a missing file is
    not an error. Later layers win; ``None`` overrides are ignored.
    """
    values: dict = {}
    known = {f.name for f in fields(Settings)}

    data_dir = overrides.get("data_dir") or os.environ.get("SKILLSMITH_DATA_DIR") or DEFAULT_DATA_DIR
    config_file = Path(config_path) if config_path else Path(data_dir) / "config.json"
    if config_file.exists():
        loaded = json.loads(config_file.read_text())
        if not isinstance(loaded, dict):
            raise ValueError(f"{config_file} must contain a JSON object")
        unknown = set(loaded) - known
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
        values.update({k: v for k, v in loaded.items() if k in known})

    # Later entries in ENV_VARS take precedence for the same field
    for env_name, field_name in ENV_VARS.items():
        if os.environ.get(env_name):
            values[field_name] = os.environ[env_name]

    values.update({k: v for k, v in overrides.items() if v is not None and k in known})
    return Settings(**values)

"""Execute a compiled Skill against its live HTTP endpoint."""

import json
import logging
from typing import Any
from urllib.parse import quote, urlencode

import aiohttp
from yarl import URL

from .skills import Skill

logger = logging.getLogger("skillsmith.invoker")

USER_AGENT = "SkillSmith/1.0"

_BODY_METHODS = ("POST", "PUT", "PATCH")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def build_url(skill: Skill, parameters: dict) -> str:
    # Some specs put the full operation path in servers[0].url
    if skill.base_url.endswith(skill.path):
        url = skill.base_url
    else:
        url = skill.base_url + skill.path

    for param in skill.params_in("path"):
        value = parameters.get(param.name)
        if value is not None:
            url = url.replace("{" + param.name + "}", quote(_stringify(value), safe=""))

    query = [
        (p.name, _stringify(parameters[p.name]))
        for p in skill.params_in("query")
        if parameters.get(p.name) is not None
    ]
    if query:
        url += "?" + urlencode(query)
    return url


def build_headers(skill: Skill, parameters: dict, api_key: str | None = None) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }
    if api_key:
        headers["Authorization"] = api_key if api_key.startswith("Bearer ") else f"Bearer {api_key}"
    for param in skill.params_in("header"):
        value = parameters.get(param.name)
        if value is not None:
            headers[param.name] = _stringify(value)
    return headers


def build_body(skill: Skill, parameters: dict) -> Any | None:
    """Return the JSON body to send, or None when the request carries no body."""
    if skill.method not in _BODY_METHODS:
        return None
    if parameters.get("body") is not None:
        return parameters["body"]
    if skill.request_body is None:
        return None
    routed = {p.name for p in skill.params_in("path", "query", "header")}
    data = {k: v for k, v in parameters.items() if k not in routed}
    return data or None


async def _send(
    http: aiohttp.ClientSession,
    skill: Skill,
    url: str,
    headers: dict,
    body: Any | None,
) -> tuple[int, Any]:
    data = json.dumps(body) if body is not None else None
    async with http.request(skill.method, URL(url, encoded=True), headers=headers, data=data) as resp:
        content_type = resp.headers.get("Content-Type", "")
        if "application/json" in content_type:
            payload = await resp.json(content_type=None)
        else:
            payload = await resp.text()
        return resp.status, payload


async def execute_skill(
    skill: Skill,
    parameters: dict | None = None,
    api_key: str | None = None,
    *,
    session: aiohttp.ClientSession | None = None,
) -> dict:
    """Call the skill's endpoint once.

    Returns ``{"success": True, "result": ...}`` or ``{"success": False, "error": ...}``.
    Every failure, including network errors, is reported in the return value.
    """
    parameters = parameters or {}
    try:
        url = build_url(skill, parameters)
        headers = build_headers(skill, parameters, api_key)
        body = build_body(skill, parameters)
        logger.debug("%s %s", skill.method, url)

        if session is not None:
            status, payload = await _send(session, skill, url, headers, body)
        else:
            async with aiohttp.ClientSession() as http:
                status, payload = await _send(http, skill, url, headers, body)
    except Exception as exc:
        logger.warning("Skill %s failed: %s", skill.name, exc)
        return {"success": False, "error": str(exc) or type(exc).__name__}

    if not 200 <= status < 300:
        return {"success": False, "error": f"HTTP {status}: {json.dumps(payload)}"}
    return {"success": True, "result": payload}

"""OpenAPI / Swagger documents → Skill descriptors → model tool schemas."""

import json
import re
from dataclasses import dataclass, field
from typing import Any

import yaml

SUPPORTED_METHODS = ("get", "post", "put", "patch", "delete")

# Raw payloads above this are rejected before decoding
MAX_SPEC_BYTES = 5 * 1024 * 1024

_PATH_TOKEN = re.compile(r"\{([^{}]+)\}")


class SpecParseError(ValueError):
    """The input is not an OpenAPI/Swagger-shaped document."""


class SpecTooLargeError(SpecParseError):
    pass


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass
class SkillParameter:
    name: str
    location: str
    required: bool = False
    type: str = "string"
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "in": self.location,
            "required": self.required,
            "type": self.type,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SkillParameter":
        return cls(
            name=data.get("name", ""),
            location=data.get("in", "query"),
            required=bool(data.get("required", False)),
            type=data.get("type") or "string",
            description=data.get("description") or "",
        )


@dataclass
class RequestBody:
    required: bool = False
    content_type: str = "application/json"
    schema: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "required": self.required,
            "contentType": self.content_type,
            "schema": self.schema,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RequestBody":
        return cls(
            required=bool(data.get("required", False)),
            content_type=data.get("contentType") or "application/json",
            schema=data.get("schema") or {},
        )


@dataclass
class Skill:
    """One callable operation of a registered API."""

    name: str
    description: str
    method: str
    path: str
    base_url: str = ""
    operation_id: str = ""
    parameters: list[SkillParameter] = field(default_factory=list)
    request_body: RequestBody | None = None

    def params_in(self, *locations: str) -> list[SkillParameter]:
        return [p for p in self.parameters if p.location in locations]

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "description": self.description,
            "operationId": self.operation_id or self.name,
            "method": self.method,
            "path": self.path,
            "baseUrl": self.base_url,
            "parameters": [p.to_dict() for p in self.parameters],
        }
        if self.request_body is not None:
            data["requestBody"] = self.request_body.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Skill":
        body = data.get("requestBody")
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            method=data.get("method", "GET").upper(),
            path=data.get("path", ""),
            base_url=data.get("baseUrl", ""),
            operation_id=data.get("operationId", data["name"]),
            parameters=[SkillParameter.from_dict(p) for p in data.get("parameters", [])],
            request_body=RequestBody.from_dict(body) if body else None,
        )


@dataclass
class ParsedSpec:
    skills: list[Skill]
    base_url: str
    metadata: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def load_spec_document(raw: Any) -> dict:
    """Decode a raw spec payload (mapping, JSON text or YAML text) into a dict."""
    if isinstance(raw, dict):
        size = len(json.dumps(raw, default=str).encode())
    elif isinstance(raw, str):
        size = len(raw.encode())
    else:
        raise SpecParseError(f"spec must be a JSON object or a string, got {type(raw).__name__}")

    if size > MAX_SPEC_BYTES:
        raise SpecTooLargeError(
            f"Spec is too large ({size} bytes); the limit is {MAX_SPEC_BYTES} bytes"
        )

    if isinstance(raw, dict):
        return raw

    try:
        doc = json.loads(raw)
    except json.JSONDecodeError:
        try:
            doc = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise SpecParseError(f"spec is neither valid JSON nor YAML: {exc}") from exc

    if not isinstance(doc, dict):
        raise SpecParseError("spec must decode to an object")
    return doc


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def _resolve_base_url(spec: dict) -> str:
    servers = spec.get("servers")
    if isinstance(servers, list) and servers and isinstance(servers[0], dict):
        return servers[0].get("url", "") or ""
    host = spec.get("host")
    if host:
        schemes = spec.get("schemes") or []
        scheme = schemes[0] if schemes else "https"
        return f"{scheme}://{host}{spec.get('basePath') or ''}"
    return ""


def _parse_parameter(param: Any, where: str) -> SkillParameter:
    if not isinstance(param, dict):
        raise SpecParseError(f"parameter in {where} is not an object")
    schema = param.get("schema") if isinstance(param.get("schema"), dict) else {}
    return SkillParameter(
        name=param.get("name", ""),
        location=param.get("in", "query"),
        required=bool(param.get("required", False)),
        type=schema.get("type") or param.get("type") or "string",
        description=param.get("description") or "",
    )


def _merge_parameters(shared: list[SkillParameter], own: list[SkillParameter]) -> list[SkillParameter]:
    """Path-item parameters first, overridden by operation parameters with the same (name, in)."""
    own_keys = {(p.name, p.location) for p in own}
    merged = [p for p in shared if (p.name, p.location) not in own_keys]
    return merged + own


def _parse_request_body(body: Any, where: str) -> RequestBody:
    if not isinstance(body, dict):
        raise SpecParseError(f"requestBody in {where} is not an object")
    content = body.get("content") or {}
    content_type = next(iter(content), "application/json")
    media = content.get(content_type) if isinstance(content, dict) else None
    schema = media.get("schema", {}) if isinstance(media, dict) else {}
    return RequestBody(
        required=bool(body.get("required", False)),
        content_type=content_type,
        schema=schema or {},
    )


def parse_spec_to_skills(spec: Any) -> ParsedSpec:
    """Compile every supported operation of an OpenAPI 3 / Swagger 2 document.

    Skills come out in path-then-method declaration order. A structurally valid
    document never raises; it may simply yield no skills.
    """
    if not isinstance(spec, dict):
        raise SpecParseError("spec must be an object")
    paths = spec.get("paths")
    if not isinstance(paths, dict):
        raise SpecParseError("spec has no 'paths' object")

    base_url = _resolve_base_url(spec)
    skills: list[Skill] = []

    for path, item in paths.items():
        if not isinstance(item, dict):
            raise SpecParseError(f"path item {path!r} is not an object")
        shared = [_parse_parameter(p, path) for p in item.get("parameters") or []]

        for method, operation in item.items():
            if method.lower() not in SUPPORTED_METHODS:
                continue
            where = f"{method.upper()} {path}"
            if not isinstance(operation, dict):
                raise SpecParseError(f"operation {where} is not an object")

            operation_id = operation.get("operationId") or f"{method.lower()}_{path.replace('/', '_')}"
            description = operation.get("summary") or operation.get("description") or where

            own = [_parse_parameter(p, where) for p in operation.get("parameters") or []]
            parameters = _merge_parameters(shared, own)

            declared = {p.name for p in parameters if p.location == "path"}
            for token in _PATH_TOKEN.findall(path):
                if token not in declared:
                    parameters.append(SkillParameter(name=token, location="path", required=True))
                    declared.add(token)

            request_body = None
            if operation.get("requestBody"):
                request_body = _parse_request_body(operation["requestBody"], where)

            skills.append(Skill(
                name=operation_id,
                description=description,
                operation_id=operation_id,
                method=method.upper(),
                path=path,
                base_url=base_url,
                parameters=parameters,
                request_body=request_body,
            ))

    info = spec.get("info") if isinstance(spec.get("info"), dict) else {}
    metadata = {
        "title": info.get("title"),
        "version": info.get("version"),
        "description": info.get("description"),
    }
    return ParsedSpec(skills=skills, base_url=base_url, metadata=metadata)


def skills_to_tool_schemas(skills) -> list[dict]:
    """Render skills as OpenAI-style function tools."""
    tools = []
    for skill in skills:
        properties: dict[str, dict] = {}
        required: list[str] = []

        for param in skill.parameters:
            properties[param.name] = {
                "type": param.type,
                "description": param.description or f"{param.name} parameter",
            }
            if param.required:
                required.append(param.name)

        if skill.request_body is not None and skill.request_body.required:
            properties["body"] = {"type": "object", "description": "Request body data"}
            required.append("body")

        tools.append({
            "type": "function",
            "function": {
                "name": skill.name,
                "description": f"{skill.description} ({skill.method} {skill.path})",
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        })
    return tools

"""HTTP API server for skillsmith."""

import json
import logging
from importlib.metadata import version as pkg_version

from aiohttp import web

from .events import StreamEvent, encode_sse
from .log import request_logger
from .orchestrator import (
    DEFAULT_SESSION_ID,
    DEFAULT_USER_ID,
    MESSAGE_REQUIRED,
    ChatOrchestrator,
    ChatRequest,
)
from .prompts import format_scenario_summary
from .skills import (
    MAX_SPEC_BYTES,
    SpecParseError,
    SpecTooLargeError,
    load_spec_document,
    parse_spec_to_skills,
)

logger = logging.getLogger("skillsmith")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Session-ID, X-User-ID",
}

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _error(message: str, status: int, **extra) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def _json_body(request: web.Request) -> dict:
    try:
        body = await request.json()
    except web.HTTPRequestEntityTooLarge:
        raise web.HTTPBadRequest(
            text=json.dumps({
                "error": f"Spec is too large; the request limit is {MAX_SPEC_BYTES} bytes",
            }),
            content_type="application/json",
        )
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Invalid JSON body"}),
            content_type="application/json",
        )
    return body


def _session_id(request: web.Request) -> str:
    return request.headers.get("X-Session-ID") or DEFAULT_SESSION_ID


def _user_id(request: web.Request) -> str:
    return request.headers.get("X-User-ID") or DEFAULT_USER_ID


class SkillServer:
    """Skill registration, chat and session endpoints over one orchestrator."""

    def __init__(
        self,
        orchestrator: ChatOrchestrator,
        host: str = "0.0.0.0",
        port: int = 8080,
        token: str | None = None,
    ):
        self.orchestrator = orchestrator
        self.registry = orchestrator.registry
        self.sessions = orchestrator.sessions
        self.host = host
        self.port = port
        self.token = token
        self._runner: web.AppRunner | None = None

    # ------------------------------------------------------------------
    # Middlewares
    # ------------------------------------------------------------------

    @web.middleware
    async def _cors_middleware(self, request: web.Request, handler):
        if request.method == "OPTIONS":
            return web.Response(status=204, headers=CORS_HEADERS)
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers.update(CORS_HEADERS)
            raise
        if not response.prepared:
            response.headers.update(CORS_HEADERS)
        return response

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as exc:
            logger.exception("Unhandled error on %s %s", request.method, request.path)
            return _error(str(exc) or type(exc).__name__, 500)

    def _check_auth(self, request: web.Request) -> bool:
        if not self.token:
            return True
        auth = request.headers.get("Authorization", "")
        return auth == f"Bearer {self.token}"

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler):
        if request.path == "/health":
            return await handler(request)
        if not self._check_auth(request):
            return _error("unauthorized", 401)
        return await handler(request)

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def _get_version(self) -> str:
        try:
            return pkg_version("skillsmith")
        except Exception:
            return "unknown"

    async def _health(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "version": self._get_version()})

    # --- Skills ---

    async def _register(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        api_name = body.get("apiName")
        raw_spec = body.get("spec")
        if not api_name or not isinstance(api_name, str) or not raw_spec:
            return _error("apiName and spec are required", 400)

        try:
            parsed = parse_spec_to_skills(load_spec_document(raw_spec))
        except SpecTooLargeError as exc:
            return _error(str(exc), 400)
        except SpecParseError as exc:
            return _error("Failed to parse OpenAPI spec", 400, details=str(exc))

        if not parsed.skills:
            return _error("No valid operations found in OpenAPI spec", 400)

        api_key = body.get("apiKey")
        if api_key is not None and not isinstance(api_key, str):
            return _error("apiKey must be a string", 400)

        result = await self.registry.register(_user_id(request), api_name, parsed, api_key)
        return web.json_response(result)

    async def _list_skills(self, request: web.Request) -> web.Response:
        apis = await self.registry.list_apis(_user_id(request))
        return web.json_response({"apis": apis})

    async def _get_skills(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        user_id = _user_id(request)
        api_name = body.get("apiName")
        if not api_name:
            return web.json_response({"apis": await self.registry.list_apis(user_id)})

        api = await self.registry.get_api(user_id, api_name)
        if api is None:
            return _error(f"API {api_name} not found", 404)
        return web.json_response({
            "apiName": api.api_name,
            "baseUrl": api.base_url,
            "skills": [s.to_dict() for s in api.skills],
            "hasApiKey": bool(api.encrypted_api_key),
        })

    async def _delete_skills(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        api_name = body.get("apiName")
        if not api_name:
            return _error("apiName is required", 400)
        if not await self.registry.delete(_user_id(request), api_name):
            return _error(f"API {api_name} not found", 404)
        return web.json_response({"success": True, "message": f"Deleted {api_name}"})

    # --- Chat ---

    async def _chat(self, request: web.Request) -> web.StreamResponse:
        body = await _json_body(request)
        message = body.get("message")
        if not isinstance(message, str) or not message.strip():
            return _error(MESSAGE_REQUIRED, 400)
        persona = body.get("persona")
        if persona is not None and not isinstance(persona, str):
            return _error("persona must be a string", 400)

        chat = ChatRequest(
            message=message,
            session_id=_session_id(request),
            user_id=_user_id(request),
            persona=persona or None,
            auto_execute_tools=body.get("autoExecuteTools", True) is not False,
        )
        log = request_logger(chat.session_id, chat.user_id)

        if body.get("stream", True) is False:
            result = await self.orchestrator.run_turn(chat, log)
            return web.json_response(result)

        # Storage failures here still surface as a 500 before the stream opens
        turn = await self.orchestrator.prepare_turn(chat, log)

        response = web.StreamResponse(status=200, headers={**SSE_HEADERS, **CORS_HEADERS})
        await response.prepare(request)

        connected = True

        async def send(chunk: bytes) -> None:
            nonlocal connected
            if not connected:
                return
            try:
                await response.write(chunk)
            except ConnectionResetError:
                log.info("Client disconnected; finishing turn without streaming")
                connected = False

        try:
            async for event in self.orchestrator.stream_reply(turn, log):
                await send(encode_sse(event))
        except Exception as exc:
            log.exception("Stream error")
            await send(encode_sse(StreamEvent(type="error", data=str(exc))))

        return response

    # --- Sessions ---

    async def _list_sessions(self, _request: web.Request) -> web.Response:
        return web.json_response({"sessions": await self.sessions.list_sessions()})

    async def _history(self, request: web.Request) -> web.Response:
        session_id = _session_id(request)
        messages = await self.sessions.history(session_id)
        return web.json_response({"sessionId": session_id, "messages": messages})

    async def _clear_history(self, request: web.Request) -> web.Response:
        await self.sessions.clear(_session_id(request))
        return web.json_response({"success": True})

    # --- Scenarios ---

    async def _list_scenarios(self, request: web.Request) -> web.Response:
        scenarios = await self.sessions.list_scenarios(_session_id(request))
        return web.json_response({"scenarios": scenarios})

    async def _add_scenario(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        try:
            entry = await self.sessions.add_scenario(_session_id(request), body)
        except ValueError as exc:
            return _error(str(exc), 400)
        return web.json_response({"success": True, "scenario": entry})

    async def _delete_scenario(self, request: web.Request) -> web.Response:
        try:
            index = int(request.match_info["index"])
        except ValueError:
            return _error("index must be an integer", 400)
        if not await self.sessions.delete_scenario(_session_id(request), index):
            return _error(f"Scenario {index} not found", 404)
        return web.json_response({"success": True})

    async def _run_scenarios(self, request: web.Request) -> web.Response:
        results = await self.sessions.run_scenarios(
            _session_id(request), session=self.orchestrator.http
        )
        return web.json_response({"results": results, "summary": format_scenario_summary(results)})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _build_app(self) -> web.Application:
        # Room for a spec at the size limit plus its JSON envelope
        app = web.Application(
            middlewares=[self._cors_middleware, self._error_middleware, self._auth_middleware],
            client_max_size=2 * MAX_SPEC_BYTES,
        )
        app.router.add_get("/health", self._health)
        app.router.add_post("/api/skills/register", self._register)
        app.router.add_get("/api/skills/list", self._list_skills)
        app.router.add_post("/api/skills/get", self._get_skills)
        app.router.add_post("/api/skills/delete", self._delete_skills)
        app.router.add_post("/api/chat", self._chat)
        app.router.add_get("/api/sessions", self._list_sessions)
        app.router.add_get("/api/sessions/history", self._history)
        app.router.add_delete("/api/sessions/history", self._clear_history)
        app.router.add_get("/api/scenarios", self._list_scenarios)
        app.router.add_post("/api/scenarios", self._add_scenario)
        app.router.add_post("/api/scenarios/run", self._run_scenarios)
        app.router.add_delete("/api/scenarios/{index}", self._delete_scenario)
        return app

    async def start(self) -> None:
        """Start the server; returns once the site is listening."""
        app = self._build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("skillsmith listening on %s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("skillsmith stopped")

"""
Event ingress - local HTTP server the forwarder posts hook events to.

Routes:
    POST /api/hooks/{event}   dispatch one event, answer with a decision
    GET  /api/status          liveness and in-flight command count

Every error answers with decision "allow". The external CLI must never be
blocked because the ingress misbehaved.
"""

from __future__ import annotations

import asyncio as _asyncio
import logging as _logging
import time as _time
import typing as _typing

import aiohttp.web as _web

import heimdall.constants as constants
import heimdall.hooks.decision as decision
import heimdall.hooks.events as events
import heimdall.notifications as notifications
import heimdall.server.lifecycle as lifecycle
import heimdall.server.payload as payload_module

if _typing.TYPE_CHECKING:
    import heimdall.agents as agents
    import heimdall.hooks.dispatcher as dispatcher

_logger = _logging.getLogger(__name__)

_Handler = _typing.Callable[[_web.Request], _typing.Awaitable[_web.StreamResponse]]


def _allow(status: int, error: str | None = None) -> _web.Response:
    body: dict[str, _typing.Any] = {"decision": "allow"}
    if error is not None:
        body["error"] = error
    return _web.json_response(body, status=status)


class HookServer:
    """
    aiohttp application around a HookDispatcher and an AgentTracker.

    Usage:
        server = HookServer(dispatcher, tracker, notifier, port=23847)
        await server.start()
        ...
        await server.stop()

    Tests can use `server.app` directly with aiohttp's test client.
    """

    def __init__(
        self,
        hook_dispatcher: dispatcher.HookDispatcher,
        tracker: agents.AgentTracker | None = None,
        notifier: notifications.Notifier | None = None,
        *,
        host: str = constants.DEFAULT_SERVER_HOST,
        port: int = constants.DEFAULT_SERVER_PORT,
    ) -> None:
        self._dispatcher = hook_dispatcher
        self._recorder = lifecycle.LifecycleRecorder(tracker) if tracker is not None else None
        self._notifier = notifier or notifications.Notifier()
        self._host = host
        self._port = port
        self._runner: _web.AppRunner | None = None

        self._app = _web.Application(
            middlewares=[self._request_logging_middleware, self._fail_open_middleware]
        )
        self._setup_routes()
        self._app.on_cleanup.append(self._on_cleanup)

    @property
    def app(self) -> _web.Application:
        return self._app

    @property
    def port(self) -> int:
        return self._port

    @property
    def running(self) -> bool:
        return self._runner is not None

    # ------------------------------------------------------------------
    # Middleware
    # ------------------------------------------------------------------

    @_web.middleware
    async def _request_logging_middleware(
        self,
        request: _web.Request,
        handler: _Handler,
    ) -> _web.StreamResponse:
        start = _time.monotonic()
        response = await handler(request)
        _logger.debug(
            "HTTP %s %s status=%s duration_ms=%.1f",
            request.method,
            request.path,
            response.status,
            (_time.monotonic() - start) * 1000,
        )
        return response

    @_web.middleware
    async def _fail_open_middleware(
        self,
        request: _web.Request,
        handler: _Handler,
    ) -> _web.StreamResponse:
        try:
            return await handler(request)
        except _web.HTTPException:
            raise
        except Exception as e:
            _logger.exception("HTTP %s %s failed", request.method, request.path)
            return _allow(500, str(e))

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _setup_routes(self) -> None:
        r = self._app.router
        r.add_post(f"{constants.HOOKS_API_PREFIX}/{{event}}", self._handle_hook)
        r.add_get("/api/status", self._handle_status)

    async def _handle_status(self, request: _web.Request) -> _web.Response:
        return _web.json_response(
            {
                "running": True,
                "port": self._port,
                "in_flight": self._dispatcher.running_count,
            }
        )

    async def _handle_hook(self, request: _web.Request) -> _web.Response:
        name = request.match_info["event"]
        try:
            event_type = events.HookEventType.from_kebab(name)
        except ValueError as e:
            _logger.warning("Rejected unknown hook event %r", name)
            return _allow(404, str(e))

        try:
            body = await request.json()
        except ValueError as e:
            return _allow(400, f"Invalid JSON body: {e}")
        if not isinstance(body, dict):
            return _allow(400, "Request body must be a JSON object")

        start = _time.monotonic()
        context = payload_module.build_context(event_type, body)
        results = await self._dispatcher.dispatch(context)
        hook_decision = decision.build_decision(event_type, results)

        if self._recorder is not None:
            try:
                await _asyncio.to_thread(self._recorder.record, event_type, body)
            except Exception:
                _logger.exception("Agent tracking failed for %s", event_type.value)

        duration_ms = int((_time.monotonic() - start) * 1000)
        self._notifier.publish(
            notifications.HOOK_PROCESSED,
            {
                "event_type": event_type.value,
                "decision": hook_decision.to_dict(),
                "hooks_run": len(results),
                "duration_ms": duration_ms,
            },
        )
        if hook_decision.blocked:
            _logger.info("%s blocked: %s", event_type.value, hook_decision.message)
        return _web.json_response(hook_decision.to_dict())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _on_cleanup(self, app: _web.Application) -> None:
        killed = self._dispatcher.kill_all()
        if killed:
            _logger.info("Killed %d running hook command(s) on shutdown", killed)

    async def start(self) -> None:
        """Bind and start serving."""
        runner = _web.AppRunner(self._app)
        await runner.setup()
        site = _web.TCPSite(runner, self._host, self._port)
        await site.start()
        self._runner = runner
        _logger.info("Hook ingress listening on %s:%d", self._host, self._port)

    async def stop(self) -> None:
        """Stop serving; running hook commands are killed."""
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        _logger.info("Hook ingress stopped")

"""Session Manager HTTP service.

Runs as a lightweight local web server that owns the session registry and
the browser extension WebSocket channel.

Endpoints:
    GET  /                                  - Service info
    GET  /health                            - Liveness check
    POST /session                           - Create a session for a batch of jobs
    GET  /session/{id}                      - Session status and results
    GET  /session/{id}/results              - Results plus summary counts
    POST /session/{id}/start-processing     - Start dispatching (idempotent)
    POST /session/{id}/reuse                - Load a new batch into a keep-alive session
    POST /session/{id}/keep-alive           - Refresh the inactivity timer
    POST /process-job                       - Push one job to a session's extension
    GET  /ws/{id}                           - Browser extension peer channel
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Optional

from aiohttp import WSMsgType, web

from ..config import SERVICE_NAME, SERVICE_VERSION, SESSION_MANAGER_HOST, SESSION_MANAGER_PORT
from ..errors import ApplierError, InvalidSessionState, ValidationError
from ..models.job import parse_payload, utcnow
from ..models.messages import ErrorMessage, parse_peer_message
from ..models.session import CreateSessionRequest, DriverMode, ProcessJobRequest, ReuseSessionRequest
from .registry import SessionRegistry

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

# Close code for a WebSocket opened against an unknown session.
SESSION_NOT_FOUND_CLOSE_CODE = 4004
# Close code for a WebSocket opened against an embedded-mode session.
WRONG_DRIVER_CLOSE_CODE = 4009


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except ApplierError as e:
        return web.json_response(e.to_dict(), status=e.status)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error(f"{request.method} {request.path} failed: {e}", exc_info=True)
        return web.json_response({"error": "internal_error", "message": str(e)}, status=500)


async def _read_json(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        raise ValidationError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    return body


def _dashboard_url(request: web.Request, session_id: str) -> str:
    return f"{request.scheme}://{request.host}/session/{session_id}"


def _websocket_url(request: web.Request, session_id: str) -> str:
    scheme = "wss" if request.secure else "ws"
    return f"{scheme}://{request.host}/ws/{session_id}"


# ── HTTP Handlers ────────────────────────────────────────────────────────────


async def handle_index(request: web.Request) -> web.Response:
    registry: SessionRegistry = request.app["registry"]
    return web.json_response({
        "message": SERVICE_NAME,
        "status": "running",
        "version": SERVICE_VERSION,
        "defaultDriverMode": registry.default_mode.value,
        "sessions": len(registry),
    })


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "healthy", "timestamp": utcnow().isoformat()})


async def handle_create_session(request: web.Request) -> web.Response:
    registry: SessionRegistry = request.app["registry"]
    params: CreateSessionRequest = parse_payload(CreateSessionRequest, await _read_json(request))

    session = registry.create(
        params.jobs,
        params.application_preferences,
        keep_alive=params.keep_alive,
        close_after_run=params.close_after_run,
        mode=params.driver_mode,
    )
    logger.info(f"[SESSION] Created {session.id} with {len(params.jobs)} jobs")
    return web.json_response({
        "sessionId": session.id,
        "status": session.status.value,
        "driverMode": session.mode.value,
        "browserUrl": _dashboard_url(request, session.id),
        "websocketUrl": _websocket_url(request, session.id),
        "message": "Session created! Connect the browser extension to continue."
        if session.mode == DriverMode.EXTENSION
        else "Session created! Log in to Upwork in the launched browser.",
    })


async def handle_get_session(request: web.Request) -> web.Response:
    registry: SessionRegistry = request.app["registry"]
    session = registry.get(request.match_info["session_id"])
    body = session.view().to_wire()
    body["browserUrl"] = _dashboard_url(request, session.id)
    return web.json_response(body)


async def handle_get_results(request: web.Request) -> web.Response:
    registry: SessionRegistry = request.app["registry"]
    session = registry.get(request.match_info["session_id"])
    view = session.view().to_wire()
    return web.json_response({
        "sessionId": session.id,
        "status": view["status"],
        "results": view["results"],
        "summary": session.summary().to_wire(),
    })


async def handle_start_processing(request: web.Request) -> web.Response:
    registry: SessionRegistry = request.app["registry"]
    session = registry.get(request.match_info["session_id"])
    started = session.start_processing()
    return web.json_response({
        "sessionId": session.id,
        "status": session.status.value,
        "started": started,
        "message": "Job processing started" if started else "Job processing already in progress",
    })


async def handle_reuse(request: web.Request) -> web.Response:
    registry: SessionRegistry = request.app["registry"]
    session = registry.get(request.match_info["session_id"])
    params: ReuseSessionRequest = parse_payload(ReuseSessionRequest, await _read_json(request))
    session.reuse(params.jobs, params.application_preferences)
    return web.json_response({
        "sessionId": session.id,
        "status": session.status.value,
        "message": "Session updated with new jobs",
        "jobsCount": len(session.jobs),
    })


async def handle_keep_alive(request: web.Request) -> web.Response:
    registry: SessionRegistry = request.app["registry"]
    session = registry.get(request.match_info["session_id"])
    session.touch()
    return web.json_response({
        "message": "Session kept alive",
        "lastActivity": session.last_activity_at.isoformat(),
    })


async def handle_process_job(request: web.Request) -> web.Response:
    registry: SessionRegistry = request.app["registry"]
    params: ProcessJobRequest = parse_payload(ProcessJobRequest, await _read_json(request))
    session = registry.get(params.session_id)
    logger.info(f"[{session.id}] Processing single job: {params.job.url}")
    applied = await session.dispatch_single(params.job)
    return web.json_response({
        "success": True,
        "jobId": params.job.id,
        "message": applied.message,
    })


# ── Extension WebSocket ──────────────────────────────────────────────────────


async def handle_websocket(request: web.Request) -> web.WebSocketResponse:
    registry: SessionRegistry = request.app["registry"]
    session_id = request.match_info["session_id"]

    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)
    logger.info(f"[WS] Connection attempt for session {session_id} ({len(registry)} sessions in memory)")

    if session_id not in registry:
        logger.info(f"[WS] Session {session_id} not found, rejecting connection")
        await ws.close(code=SESSION_NOT_FOUND_CLOSE_CODE, message=b"Session not found")
        return ws

    try:
        await registry.attach_peer(session_id, ws)
    except InvalidSessionState as e:
        logger.info(f"[WS] {e.message}")
        await ws.close(code=WRONG_DRIVER_CLOSE_CODE, message=b"Session does not use the browser extension")
        return ws

    try:
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                await _handle_peer_frame(registry, session_id, ws, msg.data)
            elif msg.type == WSMsgType.ERROR:
                logger.error(f"[WS] Connection error for session {session_id}: {ws.exception()}")
    finally:
        registry.detach_peer(session_id, ws)
    return ws


async def _handle_peer_frame(
    registry: SessionRegistry, session_id: str, ws: web.WebSocketResponse, data: str
) -> None:
    try:
        message = parse_peer_message(data)
        session = registry.get(session_id)
        await session.handle_peer_message(message)
    except ApplierError as e:
        logger.warning(f"[WS] Rejected message for session {session_id}: {e.message}")
        if not ws.closed:
            await ws.send_json(ErrorMessage(error=e.kind, message=e.message).to_wire())


# ── App Factory ──────────────────────────────────────────────────────────────


def create_app(registry: Optional[SessionRegistry] = None) -> web.Application:
    app = web.Application(middlewares=[error_middleware])
    app["registry"] = registry or SessionRegistry()

    async def on_startup(app: web.Application):
        app["registry"].start()
        logger.info(f"Session Manager started on {SESSION_MANAGER_HOST}:{SESSION_MANAGER_PORT}")

    async def on_cleanup(app: web.Application):
        await app["registry"].close()
        logger.info("Session Manager stopped.")

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    app.router.add_get("/", handle_index)
    app.router.add_get("/health", handle_health)
    app.router.add_post("/session", handle_create_session)
    app.router.add_get("/session/{session_id}", handle_get_session)
    app.router.add_get("/session/{session_id}/results", handle_get_results)
    app.router.add_post("/session/{session_id}/start-processing", handle_start_processing)
    app.router.add_post("/session/{session_id}/reuse", handle_reuse)
    app.router.add_post("/session/{session_id}/keep-alive", handle_keep_alive)
    app.router.add_post("/process-job", handle_process_job)
    app.router.add_get("/ws/{session_id}", handle_websocket)

    return app


def main():
    """Run the session manager as a standalone HTTP service."""
    app = create_app()
    web.run_app(app, host=SESSION_MANAGER_HOST, port=SESSION_MANAGER_PORT)


if __name__ == "__main__":
    main()

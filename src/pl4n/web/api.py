"""JSON API endpoints, editor pages and the SSE activity feed."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response, StreamingResponse

from ..errors import Pl4nError, TurnFailure
from ..gateway import ConcurrencyGateway
from ..orchestrator.turn import TurnOrchestrator
from ..session.models import Phase
from ..session.store import SessionManager
from .events import EventBroadcaster, sse_stream
from .templates import EDITOR_HTML, LIST_HTML

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]


def get_manager(request: Request) -> SessionManager:
	return request.app.state.manager


def get_gateway(request: Request) -> ConcurrencyGateway:
	return request.app.state.gateway


def get_broadcaster(request: Request) -> EventBroadcaster:
	return request.app.state.broadcaster


def error_response(error: Pl4nError) -> JSONResponse:
	"""Map an error to its status: 409 Conflict and 423 Locked get distinct bodies."""
	return JSONResponse(error.to_dict(), status_code=error.http_status)


def unauthorized() -> JSONResponse:
	return JSONResponse({"error": "invalid token"}, status_code=401)


def api_errors(handler: Handler) -> Handler:
	"""Turn pl4n errors raised by a handler into JSON error responses."""

	@functools.wraps(handler)
	async def wrapper(request: Request) -> Response:
		try:
			return await handler(request)
		except Pl4nError as e:
			return error_response(e)

	return wrapper


def session_route(handler: Handler) -> Handler:
	"""Require a valid ``?t=`` session token, then map errors."""

	@functools.wraps(handler)
	async def wrapper(request: Request) -> Response:
		session_id = request.path_params["id"]
		token = request.query_params.get("t")
		valid = await asyncio.to_thread(get_manager(request).validate_session_token, session_id, token)
		if not valid:
			return unauthorized()
		return await handler(request)

	return api_errors(wrapper)


async def _global_token_ok(request: Request) -> bool:
	token = request.query_params.get("t")
	return await asyncio.to_thread(get_manager(request).validate_global_token, token)


async def _parse_json(request: Request) -> Optional[dict[str, Any]]:
	try:
		payload = await request.json()
	except (json.JSONDecodeError, UnicodeDecodeError):
		return None
	return payload if isinstance(payload, dict) else None


def invalid_payload() -> JSONResponse:
	return JSONResponse({"error": "invalid payload"}, status_code=400)


async def run_turn_in_background(orchestrator: TurnOrchestrator, session_id: str) -> None:
	"""Drive the next turn after a web ``continue``; the failure is already on the session."""
	try:
		await orchestrator.run_turn(session_id)
	except TurnFailure as e:
		logger.warning(f"Background turn for {session_id} failed: {e.reason}")


# Pages

async def index(request: Request) -> Response:
	"""Serve the session list page."""
	if not await _global_token_ok(request):
		return unauthorized()
	return HTMLResponse(LIST_HTML)


@session_route
async def edit_page(request: Request) -> Response:
	"""Serve the plain-text editor for one session."""
	return HTMLResponse(EDITOR_HTML)


# API

@api_errors
async def api_sessions(request: Request) -> Response:
	"""Session list; sessions waiting for review carry an edit link."""
	if not await _global_token_ok(request):
		return unauthorized()

	manager = get_manager(request)
	include_archived = request.query_params.get("archived") in ("1", "true")
	sessions = await asyncio.to_thread(manager.list_sessions, include_archived)

	items = []
	for session in sessions:
		edit_path = None
		if session.phase == Phase.USER_REVIEW:
			token = await asyncio.to_thread(manager.ensure_session_token, session.session_id)
			edit_path = f"/edit/{session.session_id}?t={token}"
		items.append({
			"session_id": session.session_id,
			"task": session.task,
			"turn": session.turn,
			"phase": session.phase.value,
			"archived": session.archived,
			"updated_at": session.updated_at.isoformat(),
			"edit_path": edit_path,
		})
	return JSONResponse({"sessions": items})


@session_route
async def api_content(request: Request) -> Response:
	"""Document content with its modification token and side-channel copies."""
	data = await asyncio.to_thread(get_gateway(request).read_content, request.path_params["id"])
	return JSONResponse(data)


@session_route
async def api_save(request: Request) -> Response:
	payload = await _parse_json(request)
	if payload is None:
		return invalid_payload()
	result = await asyncio.to_thread(
		get_gateway(request).save,
		request.path_params["id"],
		payload.get("content"),
		payload.get("mtime"),
	)
	return JSONResponse(result)


@session_route
async def api_continue(request: Request) -> Response:
	"""Save, advance the turn and run the orchestrator after responding."""
	payload = await _parse_json(request)
	if payload is None:
		return invalid_payload()

	session_id = request.path_params["id"]
	state = await asyncio.to_thread(
		get_gateway(request).save_and_continue,
		session_id,
		payload.get("content"),
		payload.get("mtime"),
	)
	await get_broadcaster(request).publish_state(state)

	task = BackgroundTask(run_turn_in_background, request.app.state.orchestrator, session_id)
	return JSONResponse(
		{"accepted": True, "turn": state.turn, "phase": state.phase.value},
		status_code=202,
		background=task,
	)


@session_route
async def api_approve(request: Request) -> Response:
	session_id = request.path_params["id"]
	state = await asyncio.to_thread(get_gateway(request).approve, session_id)
	await get_broadcaster(request).publish_state(state)
	plan_path = get_manager(request).get_paths(session_id).approved_plan
	return JSONResponse({
		"phase": state.phase.value,
		"turn": state.turn,
		"final_turn": state.turn,
		"plan_path": str(plan_path),
	})


@session_route
async def api_archive(request: Request) -> Response:
	"""Toggle the archived flag, or set it from ``{"archived": bool}``."""
	payload = await _parse_json(request) or {}
	archived = payload.get("archived")
	if archived is not None and not isinstance(archived, bool):
		return invalid_payload()

	state = await asyncio.to_thread(get_gateway(request).toggle_archive, request.path_params["id"], archived)
	await get_broadcaster(request).publish_state(state)
	return JSONResponse({"archived": state.archived, "turn": state.turn, "phase": state.phase.value})


@session_route
async def api_autosave(request: Request) -> Response:
	"""POST writes the recovery buffer, DELETE discards it."""
	gateway = get_gateway(request)
	session_id = request.path_params["id"]

	if request.method == "DELETE":
		return JSONResponse(await asyncio.to_thread(gateway.discard_autosave, session_id))

	payload = await _parse_json(request)
	if payload is None:
		return invalid_payload()
	return JSONResponse(await asyncio.to_thread(gateway.write_autosave, session_id, payload.get("content")))


@session_route
async def api_status(request: Request) -> Response:
	state = await asyncio.to_thread(get_manager(request).require_session, request.path_params["id"])
	return JSONResponse({
		"turn": state.turn,
		"phase": state.phase.value,
		"archived": state.archived,
		"agents": {agent_id: status.value for agent_id, status in state.agents.items()},
	})


async def api_events(request: Request) -> Response:
	"""
	SSE endpoint - streams phase changes as they happen.

	The global token sees every session; ``?session=<id>`` with that
	session's token sees only that session.
	"""
	session_id = request.query_params.get("session")
	if session_id:
		token = request.query_params.get("t")
		if not await asyncio.to_thread(get_manager(request).validate_session_token, session_id, token):
			return unauthorized()
	elif not await _global_token_ok(request):
		return unauthorized()
	return StreamingResponse(
		sse_stream(get_broadcaster(request), session_id),
		media_type="text/event-stream",
		headers={
			"Cache-Control": "no-cache",
			"Connection": "keep-alive",
			"X-Accel-Buffering": "no",
		},
	)

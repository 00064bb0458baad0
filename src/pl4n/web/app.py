"""Starlette app with route assembly."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from starlette.applications import Starlette
from starlette.routing import Route

from ..adapters import create_adapter
from ..config import Config
from ..gateway import ConcurrencyGateway
from ..orchestrator.turn import AdapterFactory, TurnOrchestrator
from ..session.store import SessionManager
from .api import (
	api_approve,
	api_archive,
	api_autosave,
	api_content,
	api_continue,
	api_events,
	api_save,
	api_sessions,
	api_status,
	edit_page,
	index,
)
from .events import EventBroadcaster

logger = logging.getLogger(__name__)


def build_app(
	config: Config,
	adapter_factory: AdapterFactory = create_adapter,
	workdir: Optional[Path] = None,
) -> Starlette:
	"""Build and return the Starlette ASGI app for one storage root."""
	routes = [
		Route("/", index),
		Route("/edit/{id}", edit_page),
		Route("/api/sessions", api_sessions),
		Route("/api/session/{id}/content", api_content),
		Route("/api/session/{id}/save", api_save, methods=["POST"]),
		Route("/api/session/{id}/continue", api_continue, methods=["POST"]),
		Route("/api/session/{id}/approve", api_approve, methods=["POST"]),
		Route("/api/session/{id}/archive", api_archive, methods=["POST"]),
		Route("/api/session/{id}/autosave", api_autosave, methods=["POST", "DELETE"]),
		Route("/api/session/{id}/status", api_status),
		Route("/api/events", api_events),
	]

	manager = SessionManager(config.pl4n_dir)
	broadcaster = EventBroadcaster()

	app = Starlette(routes=routes)
	app.state.config = config
	app.state.manager = manager
	app.state.gateway = ConcurrencyGateway(manager)
	app.state.broadcaster = broadcaster
	app.state.orchestrator = TurnOrchestrator(
		manager,
		config,
		adapter_factory=adapter_factory,
		on_phase_change=broadcaster.publish_state,
		workdir=workdir,
	)
	logger.debug(f"Built web app for {config.pl4n_dir}")
	return app

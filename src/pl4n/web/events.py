"""Best-effort activity feed: phase-change events over SSE."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator, Optional

from ..session.models import SessionState

logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 15.0


class EventBroadcaster:
	"""
	Fans events out to every connected client.

	One queue per client; a client that falls behind loses events rather
	than blocking publishers. Persisted session state stays authoritative.
	"""

	def __init__(self, max_queue: int = 100):
		self.max_queue = max_queue
		self._clients: set[asyncio.Queue] = set()

	@property
	def client_count(self) -> int:
		return len(self._clients)

	def subscribe(self) -> asyncio.Queue:
		queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
		self._clients.add(queue)
		return queue

	def unsubscribe(self, queue: asyncio.Queue) -> None:
		self._clients.discard(queue)

	async def publish(self, event: str, data: dict) -> None:
		for queue in list(self._clients):
			try:
				queue.put_nowait((event, data))
			except asyncio.QueueFull:
				logger.debug(f"Dropping {event} event for a slow client")

	async def publish_state(self, state: SessionState) -> None:
		"""Announce a session's current turn and phase."""
		await self.publish("session_update", {
			"session_id": state.session_id,
			"turn": state.turn,
			"phase": state.phase.value,
			"archived": state.archived,
		})


async def sse_stream(
	broadcaster: EventBroadcaster,
	session_id: Optional[str] = None,
	heartbeat: float = HEARTBEAT_SECONDS,
) -> AsyncGenerator[str, None]:
	"""Yield SSE frames for one client until it disconnects, optionally for one session only."""
	queue = broadcaster.subscribe()
	try:
		# Send an initial event so the browser fires onopen reliably
		yield "event: connected\ndata: {}\n\n"
		while True:
			try:
				event, data = await asyncio.wait_for(queue.get(), timeout=heartbeat)
			except asyncio.TimeoutError:
				# Heartbeat to keep connection alive
				yield ": heartbeat\n\n"
				continue
			if session_id and data.get("session_id") != session_id:
				continue
			yield f"event: {event}\ndata: {json.dumps(data)}\n\n"
	finally:
		broadcaster.unsubscribe(queue)

"""
Error taxonomy shared by the CLI, the web surface and the orchestrator.

Every error carries a stable ``code`` and the HTTP status the editing
surface maps it to. ``to_dict()`` renders the JSON body both outer
surfaces emit.
"""

from typing import Any, Optional


class Pl4nError(Exception):
	"""Base class for all reported pl4n errors."""

	code = "error"
	http_status = 500

	def __init__(self, message: str, **context: Any):
		super().__init__(message)
		self.message = message
		self.context = context

	def to_dict(self) -> dict[str, Any]:
		data: dict[str, Any] = {"error": self.message}
		for key, value in self.context.items():
			if value is not None:
				data[key] = value
		return data


class ValidationError(Pl4nError):
	"""Bad input. Nothing was mutated."""

	code = "validation"
	http_status = 400


class UnansweredQuestionsError(ValidationError):
	"""Approval attempted while the turn document still has an empty Answer field."""

	code = "unanswered_questions"

	def __init__(self, message: str = "unanswered questions", **context: Any):
		super().__init__(message, **context)


class NotFoundError(Pl4nError):
	"""A session or one of its documents does not exist."""

	code = "not_found"
	http_status = 404


class SessionNotFoundError(NotFoundError):
	"""Unknown session id."""

	def __init__(self, session_id: str):
		super().__init__(f"Session {session_id} not found")
		self.session_id = session_id


class InvalidTransitionError(Pl4nError):
	"""Phase guard failure; reports the current phase."""

	code = "invalid_transition"
	http_status = 409

	def __init__(self, message: str, phase: Optional[str] = None, turn: Optional[int] = None, **context: Any):
		super().__init__(message, phase=phase, turn=turn, **context)
		self.phase = phase
		self.turn = turn


class LockedError(InvalidTransitionError):
	"""Mutation attempted on a session whose document is read-only."""

	code = "locked"
	http_status = 423

	def __init__(self, message: str = "session locked", phase: Optional[str] = None, turn: Optional[int] = None):
		super().__init__(message, phase=phase, turn=turn)


class ConflictError(Pl4nError):
	"""Stale modification token. Carries the current token (and optionally content)."""

	code = "conflict"
	http_status = 409

	def __init__(self, mtime: int, content: Optional[str] = None):
		super().__init__("stale content", mtime=mtime)
		self.mtime = mtime
		self.content = content


class AgentFailure(Pl4nError):
	"""One agent call failed. Recorded on the session, never aborts siblings."""

	code = "agent_failure"

	def __init__(self, agent_id: str, message: str):
		super().__init__(message, agent_id=agent_id)
		self.agent_id = agent_id


class TurnFailure(Pl4nError):
	"""A whole turn failed. Safe to retry; the turn number is kept."""

	code = "turn_failure"

	def __init__(self, turn: int, reason: str, **context: Any):
		super().__init__("Turn failed", turn=turn, reason=reason, **context)
		self.turn = turn
		self.reason = reason

"""
Concurrency Gateway - optimistic concurrency between editors and the session store.

Features:
- Every content read returns the document's modification token (``mtime``)
- Saves compare-and-swap on that token under the session's state lock
- Approved sessions reject every mutation (Locked); reads stay allowed
- An autosave side-channel that never touches the canonical document

Whole-document, last-writer-wins: a conflicting save is rejected with the
current token and never merged.
"""

import logging
import os
from typing import Any, Optional

from .errors import ConflictError, LockedError, NotFoundError, UnansweredQuestionsError, ValidationError
from .orchestrator.phases import Command, advance, guard_command
from .session.models import Phase, SessionPaths, SessionState
from .session.store import SessionManager, has_unanswered_questions, mtime_token, read_text, write_text_atomic

logger = logging.getLogger(__name__)


def _current_token(path) -> Optional[int]:
	try:
		return mtime_token(path)
	except FileNotFoundError:
		return None


def _check_token(mtime: Any) -> int:
	if isinstance(mtime, bool) or not isinstance(mtime, (int, float)):
		raise ValidationError("mtime must be a number")
	return int(mtime)


class ConcurrencyGateway:
	"""Mediates every client read and write of a session's turn document."""

	def __init__(self, manager: SessionManager):
		self.manager = manager

	def _require_editable(self, state: SessionState) -> None:
		# The document is writable only while its turn waits for the user
		if state.phase != Phase.USER_REVIEW:
			raise LockedError(phase=state.phase.value, turn=state.turn)

	def document_path(self, state: SessionState, paths: SessionPaths):
		"""The approved plan once approved, else the current turn document."""
		if state.phase == Phase.APPROVED and paths.approved_plan.exists():
			return paths.approved_plan
		return paths.turn_file(state.turn)

	def read_content(self, session_id: str) -> dict:
		"""
		Read the canonical document with its token and the side-channel copies.

		Raises:
			SessionNotFoundError: unknown session
			NotFoundError: the current turn has no document yet
		"""
		state = self.manager.require_session(session_id)
		paths = self.manager.get_paths(session_id)
		path = self.document_path(state, paths)

		content = read_text(path)
		if content is None:
			raise NotFoundError("content not found", turn=state.turn, phase=state.phase.value)

		autosave = read_text(paths.turn_autosave_file(state.turn))
		return {
			"content": content,
			"mtime": mtime_token(path),
			"turn": state.turn,
			"phase": state.phase.value,
			"archived": state.archived,
			"readOnly": state.phase != Phase.USER_REVIEW,
			"hasAutosave": autosave is not None,
			"autosave": autosave,
			"snapshot": read_text(paths.turn_snapshot_file(state.turn)),
		}

	def _write_if_current(self, state: SessionState, content: str, mtime: int) -> int:
		"""Compare-and-swap the turn document. Caller holds the state lock."""
		paths = self.manager.get_paths(state.session_id)
		turn_file = paths.turn_file(state.turn)

		current = _current_token(turn_file)
		if current is not None and current != mtime:
			raise ConflictError(current, content=read_text(turn_file))

		write_text_atomic(turn_file, content, after_token=current)
		paths.turn_autosave_file(state.turn).unlink(missing_ok=True)
		return mtime_token(turn_file)

	def save(self, session_id: str, content: Any, mtime: Any) -> dict:
		"""
		Save the document if ``mtime`` is the token the client last observed.

		Returns:
			Dict with the new token, strictly greater than ``mtime``

		Raises:
			ConflictError: the document changed since ``mtime``
			LockedError: the session is not waiting for user review
		"""
		if not isinstance(content, str):
			raise ValidationError("content must be a string")
		token = _check_token(mtime)

		with self.manager.lock(session_id):
			state = self.manager.require_session(session_id)
			self._require_editable(state)
			new_token = self._write_if_current(state, content, token)

		logger.info(f"Saved turn {state.turn} of {session_id}")
		return {"mtime": new_token, "turn": state.turn, "phase": state.phase.value}

	def advance_turn(self, session_id: str) -> SessionState:
		"""``user_review -> drafting`` with ``turn += 1``."""
		with self.manager.lock(session_id):
			state = self.manager.require_session(session_id)
			guard_command(state, Command.CONTINUE)
			self._next_turn(state)
		return state

	def save_and_continue(self, session_id: str, content: Any, mtime: Any) -> SessionState:
		"""Save (same conflict and lock rules as ``save``), then advance the turn."""
		if not isinstance(content, str):
			raise ValidationError("content must be a string")
		token = _check_token(mtime)

		with self.manager.lock(session_id):
			state = self.manager.require_session(session_id)
			self._require_editable(state)
			self._write_if_current(state, content, token)
			self._next_turn(state)
		return state

	def _next_turn(self, state: SessionState) -> None:
		advance(state, Phase.DRAFTING)
		state.turn += 1
		self.manager.save_state(state)
		logger.info(f"Session {state.session_id} advanced to turn {state.turn}")

	def approve(self, session_id: str) -> SessionState:
		"""
		Approve the current turn document and lock the session.

		Raises:
			LockedError: already approved
			InvalidTransitionError: not in user_review
			UnansweredQuestionsError: an Answer field is still empty
		"""
		with self.manager.lock(session_id):
			state = self.manager.require_session(session_id)
			guard_command(state, Command.APPROVE)

			paths = self.manager.get_paths(session_id)
			turn_file = paths.turn_file(state.turn)
			content = read_text(turn_file)
			if content is None:
				raise NotFoundError("content not found", turn=state.turn, phase=state.phase.value)
			if has_unanswered_questions(content):
				raise UnansweredQuestionsError(
					turn=state.turn,
					phase=state.phase.value,
					hint="Answer all questions in the plan file first",
				)

			self._link_approved_plan(paths, state.turn)
			advance(state, Phase.APPROVED)
			self.manager.save_state(state)

		logger.info(f"Session {session_id} approved at turn {state.turn}")
		return state

	def _link_approved_plan(self, paths: SessionPaths, turn: int) -> None:
		"""Point ``PLAN.md`` at the turn document with a relative symlink, atomically."""
		link = paths.approved_plan
		target = os.path.relpath(paths.turn_file(turn), paths.root)
		tmp_link = link.with_name(f".{link.name}.tmp")
		tmp_link.unlink(missing_ok=True)
		os.symlink(target, tmp_link)
		os.replace(tmp_link, link)

	def toggle_archive(self, session_id: str, archived: Optional[bool] = None) -> SessionState:
		"""Flip (or set) the archived flag. Allowed at any phase."""

		def mutate(state: SessionState) -> None:
			state.archived = (not state.archived) if archived is None else archived

		state = self.manager.update_state(session_id, mutate)
		logger.info(f"Session {session_id} archived={state.archived}")
		return state

	def write_autosave(self, session_id: str, content: Any) -> dict:
		"""Store the recovery buffer. Never touches the document or its token."""
		if not isinstance(content, str):
			raise ValidationError("content must be a string")
		state = self.manager.require_session(session_id)
		self._require_editable(state)
		write_text_atomic(self.manager.get_paths(session_id).turn_autosave_file(state.turn), content)
		return {"saved": True}

	def discard_autosave(self, session_id: str) -> dict:
		state = self.manager.require_session(session_id)
		self._require_editable(state)
		self.manager.get_paths(session_id).turn_autosave_file(state.turn).unlink(missing_ok=True)
		return {"discarded": True}

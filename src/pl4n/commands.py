"""
Session commands shared by the CLI and the web surface.

Each command checks its phase guard before mutating anything and returns
the JSON-ready dict the outer surfaces print or send.
"""

import logging
from typing import Optional

from .adapters import create_adapter
from .config import Config
from .diff import build_line_diff, summarize_changes, unified_diff
from .errors import NotFoundError, TurnFailure, ValidationError
from .gateway import ConcurrencyGateway
from .orchestrator.phases import Command, RESTING_PHASES, guard_command
from .orchestrator.turn import AdapterFactory, TurnOrchestrator
from .session.models import Phase, SessionState
from .session.store import SessionManager, read_text

logger = logging.getLogger(__name__)

HINT_WAIT = "call wait to block until turn complete"
HINT_REVIEW = "User should edit file, then call continue or approve"
HINT_DONE = "Planning complete. Plan is ready for implementation."


class SessionCommands:
	"""
	The core operations behind ``pl4n <command>``.

	Usage:
		commands = SessionCommands(manager, config)
		result = commands.init("Add OAuth login")
		result = await commands.wait(result["session_id"])
	"""

	def __init__(
		self,
		manager: SessionManager,
		config: Config,
		adapter_factory: AdapterFactory = create_adapter,
		orchestrator: Optional[TurnOrchestrator] = None,
	):
		self.manager = manager
		self.config = config
		self.gateway = ConcurrencyGateway(manager)
		self.orchestrator = orchestrator or TurnOrchestrator(manager, config, adapter_factory)

	def _turn_file(self, state: SessionState) -> str:
		return str(self.manager.get_paths(state.session_id).turn_file(state.turn))

	def _at_rest(self, state: SessionState) -> dict:
		if state.phase == Phase.APPROVED:
			return {
				"session_id": state.session_id,
				"turn": state.turn,
				"phase": state.phase.value,
				"file": str(self.manager.get_paths(state.session_id).approved_plan),
				"hint": "Planning complete",
			}
		return {
			"session_id": state.session_id,
			"turn": state.turn,
			"phase": state.phase.value,
			"file": self._turn_file(state),
			"has_questions": self.manager.has_questions(state.session_id),
			"hint": HINT_REVIEW,
		}

	def init(self, task: str) -> dict:
		"""Create a session and move it to drafting."""
		state = self.manager.create_session(task, roster=self.config.roster)
		guard_command(state, Command.INIT)
		state.phase = Phase.DRAFTING
		self.manager.save_state(state)
		return {
			"session_id": state.session_id,
			"turn": state.turn,
			"phase": state.phase.value,
			"hint": HINT_WAIT,
		}

	def list(self, include_archived: bool = False) -> dict:
		sessions = self.manager.list_sessions(include_archived=include_archived)
		return {
			"sessions": [
				{
					"session_id": s.session_id,
					"task": s.task,
					"turn": s.turn,
					"phase": s.phase.value,
					"archived": s.archived,
					"updated_at": s.updated_at.isoformat(),
				}
				for s in sessions
			],
			"hint": "Use --session with status, wait, continue or approve",
		}

	def status(self, session_id: str) -> dict:
		"""Non-blocking view of the session, including mid-run agent statuses."""
		state = self.manager.require_session(session_id)
		paths = self.manager.get_paths(session_id)
		turn_file = paths.turn_file(state.turn)

		result = state.to_dict()
		result["file"] = str(turn_file) if turn_file.exists() else None
		result["has_questions"] = self.manager.has_questions(session_id)
		if state.phase in RESTING_PHASES:
			result["hint"] = HINT_DONE if state.phase == Phase.APPROVED else HINT_REVIEW
		elif state.phase == Phase.ERROR:
			result["hint"] = f"Check agent logs in {paths.agents}, then call wait to retry"
		else:
			result["hint"] = HINT_WAIT
		return result

	async def wait(self, session_id: str) -> dict:
		"""
		Block until the current turn settles.

		Returns immediately when the session is already at rest; otherwise
		drives the orchestrator (re-attempting the same turn after an error).

		Raises:
			TurnFailure: the turn failed; the session is left in ``error``
		"""
		state = self.manager.require_session(session_id)
		guard_command(state, Command.WAIT)
		if state.phase in RESTING_PHASES:
			return self._at_rest(state)

		try:
			await self.orchestrator.run_turn(session_id)
		except TurnFailure as e:
			failed = self.manager.require_session(session_id)
			raise TurnFailure(
				e.turn,
				e.reason,
				phase=failed.phase.value,
				agent_errors=dict(failed.agent_errors) or None,
				hint=f"Check agent logs in {self.manager.get_paths(session_id).agents}",
			) from e

		return self._at_rest(self.manager.require_session(session_id))

	def continue_(self, session_id: str) -> dict:
		state = self.gateway.advance_turn(session_id)
		return {
			"session_id": state.session_id,
			"turn": state.turn,
			"phase": state.phase.value,
			"hint": HINT_WAIT,
		}

	def approve(self, session_id: str) -> dict:
		state = self.gateway.approve(session_id)
		return {
			"session_id": state.session_id,
			"turn": state.turn,
			"phase": state.phase.value,
			"final_turn": state.turn,
			"plan_path": str(self.manager.get_paths(session_id).approved_plan),
			"hint": HINT_DONE,
		}

	def archive(self, session_id: str, archived: Optional[bool] = None) -> dict:
		state = self.gateway.toggle_archive(session_id, archived)
		return {
			"session_id": state.session_id,
			"turn": state.turn,
			"phase": state.phase.value,
			"archived": state.archived,
			"hint": "Archived sessions are hidden from list" if state.archived else "Session is visible in list again",
		}

	def clean(self, session_id: str) -> dict:
		"""Remove the whole session directory. Irreversible."""
		state = self.manager.require_session(session_id)
		self.manager.clean_session(session_id)
		return {
			"session_id": session_id,
			"cleaned": True,
			"turn": state.turn,
			"phase": state.phase.value,
			"hint": "Session removed",
		}

	def diff(self, session_id: str) -> dict:
		"""Changes between the previous and the current turn documents."""
		state = self.manager.require_session(session_id)
		if state.turn < 2:
			raise ValidationError("Need at least 2 turns to show diff", turn=state.turn, phase=state.phase.value)

		paths = self.manager.get_paths(session_id)
		old_file = paths.turn_file(state.turn - 1)
		new_file = paths.turn_file(state.turn)
		old_text = read_text(old_file)
		new_text = read_text(new_file)
		if old_text is None or new_text is None:
			raise NotFoundError("Turn files not found", turn=state.turn, phase=state.phase.value)

		bundle = summarize_changes(old_text, new_text)
		return {
			"session_id": session_id,
			"turn": state.turn,
			"phase": state.phase.value,
			"from_turn": state.turn - 1,
			"to_turn": state.turn,
			"additions": bundle.additions,
			"deletions": bundle.deletions,
			"diff": unified_diff(old_text, new_text, old_file.name, new_file.name),
			"changes": [change.to_dict() for change in build_line_diff(old_text, new_text)],
			"hint": HINT_REVIEW if state.phase == Phase.USER_REVIEW else "Review the changes between turns",
		}

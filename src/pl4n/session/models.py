"""
Session Models - session state and on-disk layout.

``SessionState`` is what ``state.yaml`` and ``meta.yaml`` hold between
them; ``SessionPaths`` derives every file location from the session root.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
	return datetime.now(timezone.utc)


class Phase(str, Enum):
	"""Orchestration phase of a session."""
	INITIALIZING = "initializing"
	DRAFTING = "drafting"
	PEER_REVIEW = "peer_review"
	SYNTHESIZING = "synthesizing"
	USER_REVIEW = "user_review"
	APPROVED = "approved"
	ERROR = "error"


class AgentStatus(str, Enum):
	"""Status of one agent within the running phase."""
	PENDING = "pending"
	WORKING = "working"
	DONE = "done"
	ERROR = "error"


class SessionState(BaseModel):
	"""
	Durable state of one planning session.

	``turn`` starts at 1 and only ``continue`` increments it.
	``session_token`` is assigned once and never changes.
	"""
	session_id: str = Field(description="Stable, human-readable session id")
	task: str = Field(description="Free-text task description")
	turn: int = Field(default=1, ge=1)
	phase: Phase = Field(default=Phase.INITIALIZING)
	created_at: datetime = Field(default_factory=utc_now)
	updated_at: datetime = Field(default_factory=utc_now)
	archived: bool = Field(default=False, description="Visibility flag only")
	agents: dict[str, AgentStatus] = Field(default_factory=dict)
	agent_plan_ids: dict[str, str] = Field(default_factory=dict)
	agent_errors: dict[str, str] = Field(default_factory=dict)
	session_token: Optional[str] = Field(default=None)

	def to_dict(self) -> dict:
		"""Public JSON shape (the session token is never exposed)."""
		data = {
			"session_id": self.session_id,
			"task": self.task,
			"turn": self.turn,
			"phase": self.phase.value,
			"created_at": self.created_at.isoformat(),
			"updated_at": self.updated_at.isoformat(),
			"archived": self.archived,
			"agents": {agent_id: status.value for agent_id, status in self.agents.items()},
		}
		if self.agent_errors:
			data["agent_errors"] = dict(self.agent_errors)
		return data


def _turn_stem(turn: int) -> str:
	return f"{turn:03d}"


@dataclass(frozen=True)
class SessionPaths:
	"""Deterministic file layout of one session directory."""

	root: Path

	@property
	def meta(self) -> Path:
		return self.root / "meta.yaml"

	@property
	def state(self) -> Path:
		return self.root / "state.yaml"

	@property
	def input(self) -> Path:
		return self.root / "input.md"

	@property
	def turns(self) -> Path:
		return self.root / "turns"

	@property
	def agents(self) -> Path:
		return self.root / "agents"

	@property
	def plans(self) -> Path:
		return self.root / "plans"

	@property
	def approved_plan(self) -> Path:
		"""Approval reference: a relative symlink to the approved turn document."""
		return self.root / "PLAN.md"

	def lock_file(self, name: str) -> Path:
		return self.root / f"{name}.lock"

	def turn_file(self, turn: int) -> Path:
		return self.turns / f"{_turn_stem(turn)}.md"

	def turn_snapshot_file(self, turn: int) -> Path:
		return self.turns / f"{_turn_stem(turn)}.snapshot.md"

	def turn_autosave_file(self, turn: int) -> Path:
		return self.turns / f"{_turn_stem(turn)}.autosave.md"

	def turn_snapshot_dir(self, turn: int) -> Path:
		"""Per-turn copies of each agent's draft and reviewed plan."""
		return self.turns / _turn_stem(turn)

	def agent_plan_file(self, plan_id: str) -> Path:
		return self.plans / f"{plan_id}.md"

	def agent_dir(self, plan_id: str) -> Path:
		return self.agents / plan_id

	def agent_log_file(self, plan_id: str) -> Path:
		return self.agent_dir(plan_id) / "agent.log"

	def agent_session_file(self, plan_id: str) -> Path:
		"""Resume token of the external tool for this plan id."""
		return self.agent_dir(plan_id) / "session.txt"

"""Shared test helpers: a scripted agent adapter and config builders."""

import asyncio
from pathlib import Path
from typing import Optional

from pl4n.adapters import AgentAdapter, AgentCallContext
from pl4n.config import AgentConfig, AgentRoster, AgentType, Config

ANSWERED_PLAN = """# Plan

## Clarifications

### Questions

**Q1: Which database?**
- My lean: Postgres
- **Answer:** Postgres

## Summary

Do the thing.
"""

UNANSWERED_PLAN = """# Plan

## Clarifications

### Questions

**Q1: Which database?**
- My lean: Postgres
- **Answer:**

## Summary

Do the thing.
"""


def make_roster(agent_ids: tuple[str, ...] = ("opus", "codex"), disabled: tuple[str, ...] = ()) -> AgentRoster:
	"""Roster of claude agents with the given ids plus a synthesizer."""
	return AgentRoster(
		agents=[
			AgentConfig(id=agent_id, type=AgentType.CLAUDE, model="test", enabled=agent_id not in disabled)
			for agent_id in agent_ids
		],
		synthesizer=AgentConfig(id="synthesizer", type=AgentType.CLAUDE, model="test"),
	)


def make_config(tmp_path: Path, roster: Optional[AgentRoster] = None, timeout: float = 5.0) -> Config:
	"""Config rooted in ``tmp_path`` that never reads the user's config directory."""
	return Config(
		pl4n_dir=tmp_path / ".pl4n",
		user_config_dir=tmp_path / "user-config",
		timeout=timeout,
		roster=roster or make_roster(),
	)


class AgentScript:
	"""
	Scripted behaviour for every fake agent in a test.

	Calls are recorded in order. Failures, delays and outputs are keyed by
	``(phase, agent_id)`` where phase is draft, review or synthesize.
	"""

	def __init__(self, synthesis: str = ANSWERED_PLAN):
		self.calls: list[dict] = []
		self.failures: dict[tuple[str, str], Exception] = {}
		self.delays: dict[tuple[str, str], float] = {}
		self.outputs: dict[tuple[str, str], str] = {}
		self.synthesis = synthesis

	def fail(self, phase: str, agent_id: str, message: str = "agent crashed") -> None:
		self.failures[(phase, agent_id)] = RuntimeError(message)

	def delay(self, phase: str, agent_id: str, seconds: float) -> None:
		self.delays[(phase, agent_id)] = seconds

	def calls_for(self, phase: str) -> list[dict]:
		return [call for call in self.calls if call["phase"] == phase]

	def factory(self, config: AgentConfig) -> "FakeAdapter":
		return FakeAdapter(config, self)

	def default_output(self, phase: str, agent_id: str, turn: int) -> str:
		if phase == "synthesize":
			return self.synthesis
		return f"# Plan from {agent_id}\n\nTurn {turn} {phase}\n"

	async def respond(self, phase: str, agent_id: str, context: AgentCallContext, **kwargs) -> str:
		self.calls.append({"phase": phase, "agent_id": agent_id, "turn": context.turn, "context": context, **kwargs})
		key = (phase, agent_id)
		if key in self.delays:
			await asyncio.sleep(self.delays[key])
		if key in self.failures:
			raise self.failures[key]
		return self.outputs.get(key, self.default_output(phase, agent_id, context.turn))


class FakeAdapter(AgentAdapter):
	"""Adapter answering from an AgentScript instead of running a tool."""

	def __init__(self, config: AgentConfig, script: AgentScript):
		super().__init__(config)
		self.script = script

	async def draft(self, task, prior_content, feedback, context):
		return await self.script.respond(
			"draft", self.agent_id, context,
			task=task, prior_content=prior_content, feedback=feedback,
		)

	async def review(self, own_draft, peer_draft, context, peer_id=""):
		return await self.script.respond(
			"review", self.agent_id, context,
			own_draft=own_draft, peer_draft=peer_draft, peer_id=peer_id,
		)

	async def synthesize(self, plans, user_diff, context):
		return await self.script.respond(
			"synthesize", self.agent_id, context,
			plans=dict(plans), user_diff=user_diff,
		)

"""
Turn Orchestrator - drives one turn from drafting to user review.

Features:
- Draft, peer review and synthesis run strictly in sequence
- Within a phase every enabled agent is called concurrently behind a barrier
- Per-agent failures are recorded on the session and never abort siblings
- Agent statuses are persisted after every phase for non-blocking status queries
- Runs are serialized per session with the session's ``run`` lock
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..adapters import AgentAdapter, AgentCallContext, create_adapter
from ..config import AgentConfig, AgentRoster, Config
from ..diff import feedback_or_sentinel, summarize_changes
from ..errors import AgentFailure, TurnFailure
from ..names import generate_unique_name
from ..session.models import AgentStatus, Phase, SessionPaths, SessionState
from ..session.store import SessionManager, read_text, write_text_atomic
from .batch import BatchItem, BatchProcessor, BatchStatus, BatchSummary
from .phases import RESTING_PHASES, advance, restart_turn

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[AgentConfig], AgentAdapter]
PhaseCallback = Callable[[SessionState], Awaitable[None]]


class TurnOrchestrator:
	"""
	Drives a session's current turn to ``user_review``.

	Usage:
		orchestrator = TurnOrchestrator(manager, config)
		await orchestrator.run_turn("brave-otter")
	"""

	def __init__(
		self,
		manager: SessionManager,
		config: Config,
		adapter_factory: AdapterFactory = create_adapter,
		on_phase_change: Optional[PhaseCallback] = None,
		workdir: Optional[Path] = None,
	):
		self.manager = manager
		self.config = config
		self.adapter_factory = adapter_factory
		self.workdir = workdir or Path.cwd()
		self._phase_callback = on_phase_change

	def set_phase_callback(self, callback: PhaseCallback) -> None:
		"""Set callback for phase changes (receives the saved state)."""
		self._phase_callback = callback

	async def _notify(self, state: SessionState) -> None:
		if not self._phase_callback:
			return
		try:
			await self._phase_callback(state)
		except Exception as e:
			# The activity feed is advisory; persisted state is authoritative
			logger.warning(f"Phase callback failed for {state.session_id}: {e}")

	def roster_for(self, session_id: str) -> AgentRoster:
		"""The roster snapshotted at session creation, else the current config's."""
		meta = self.manager.load_meta(session_id)
		snapshot = meta.get("config")
		if snapshot is None:
			return self.config.roster
		return AgentRoster.from_config_data(snapshot, f"session {session_id} metadata")

	async def run_turn(self, session_id: str) -> bool:
		"""
		Run the current turn to completion.

		Blocks on the session's run lock first, so a second caller waits for the
		first run and then finds the session at rest.

		Returns:
			True once the session is at rest (user_review or approved)

		Raises:
			TurnFailure: every agent in a phase failed, or synthesis failed.
				The session is left in ``error`` with the same turn number.
		"""
		lock = self.manager.lock(session_id, "run")
		await asyncio.to_thread(lock.acquire)
		try:
			state = self.manager.require_session(session_id)
			if state.phase in RESTING_PHASES:
				return True
			await self._run_locked(state)
			return True
		finally:
			lock.release()

	async def _run_locked(self, state: SessionState) -> None:
		session_id = state.session_id
		paths = self.manager.get_paths(session_id)
		roster = self.roster_for(session_id)
		agents = roster.enabled_agents
		turn = state.turn

		state = self._update(session_id, lambda s: self._prepare(s, roster))
		logger.info(f"Session {session_id}: turn {turn} drafting with {len(agents)} agent(s)")
		await self._notify(state)

		try:
			drafts = await self._run_drafts(state, paths, agents)

			state = self._update(session_id, lambda s: advance(s, Phase.PEER_REVIEW))
			await self._notify(state)
			plans = await self._run_reviews(state, paths, agents, drafts)

			state = self._update(session_id, lambda s: advance(s, Phase.SYNTHESIZING))
			await self._notify(state)
			content = await self._run_synthesis(state, paths, roster.synthesizer, plans)
		except TurnFailure as e:
			logger.warning(f"Session {session_id}: turn {turn} failed: {e.reason}")
			state = self._update(session_id, lambda s: advance(s, Phase.ERROR))
			await self._notify(state)
			raise

		write_text_atomic(paths.turn_file(turn), content)
		write_text_atomic(paths.turn_snapshot_file(turn), content)

		state = self._update(session_id, lambda s: advance(s, Phase.USER_REVIEW))
		logger.info(f"Session {session_id}: turn {turn} ready for review")
		await self._notify(state)

	def _update(self, session_id: str, mutate: Callable[[SessionState], None]) -> SessionState:
		return self.manager.update_state(session_id, mutate)

	def _prepare(self, state: SessionState, roster: AgentRoster) -> None:
		"""Restart the turn at drafting, assign plan ids and reset agent statuses."""
		restart_turn(state)

		configured = set(roster.agent_ids)
		state.agent_plan_ids = {
			agent_id: plan_id
			for agent_id, plan_id in state.agent_plan_ids.items()
			if agent_id in configured
		}
		for agent in roster.enabled_agents:
			if agent.id not in state.agent_plan_ids:
				state.agent_plan_ids[agent.id] = generate_unique_name(
					existing=set(state.agent_plan_ids.values()) | {roster.synthesizer.id},
				)

		state.agents = {agent.id: AgentStatus.PENDING for agent in roster.enabled_agents}
		state.agent_errors = {}

	def _context(self, state: SessionState, paths: SessionPaths, agent_id: str, key: str, output_file: Path) -> AgentCallContext:
		return AgentCallContext(
			agent_id=agent_id,
			task=state.task,
			turn=state.turn,
			output_file=output_file,
			log_file=paths.agent_log_file(key),
			session_file=paths.agent_session_file(key),
			workdir=self.workdir,
		)

	def _mark(self, session_id: str, agent_ids: list[str], status: AgentStatus) -> SessionState:
		def mutate(s: SessionState) -> None:
			for agent_id in agent_ids:
				s.agents[agent_id] = status
		return self._update(session_id, mutate)

	def _record(self, session_id: str, summary: BatchSummary) -> SessionState:
		"""Persist each settled call's status and error."""
		def mutate(s: SessionState) -> None:
			for result in summary.results:
				if result.success:
					s.agents[result.item_id] = AgentStatus.DONE
				else:
					s.agents[result.item_id] = AgentStatus.ERROR
					s.agent_errors[result.item_id] = result.error or "unknown error"
		return self._update(session_id, mutate)

	def _feedback(self, paths: SessionPaths, turn: int) -> Optional[str]:
		"""User edits to the previous turn document, or None on turn 1."""
		if turn <= 1:
			return None
		return feedback_or_sentinel(
			read_text(paths.turn_snapshot_file(turn - 1)),
			read_text(paths.turn_file(turn - 1)),
		)

	async def _run_drafts(
		self,
		state: SessionState,
		paths: SessionPaths,
		agents: list[AgentConfig],
	) -> dict[str, str]:
		"""Draft phase. Returns successful drafts keyed by agent id, in roster order."""
		turn = state.turn
		feedback = self._feedback(paths, turn)
		snapshot_dir = paths.turn_snapshot_dir(turn)
		state = self._mark(state.session_id, [a.id for a in agents], AgentStatus.WORKING)
		await self._notify(state)

		async def draft(item: BatchItem[AgentConfig]) -> str:
			agent = item.data
			plan_id = state.agent_plan_ids[agent.id]
			plan_file = paths.agent_plan_file(plan_id)
			prior = read_text(plan_file) if turn > 1 else None
			context = self._context(state, paths, agent.id, plan_id, plan_file)

			text = await self.adapter_factory(agent).draft(state.task, prior, feedback, context)
			if not text or not text.strip():
				raise AgentFailure(agent.id, "No output produced")
			write_text_atomic(plan_file, text)
			write_text_atomic(snapshot_dir / f"{plan_id}.draft.md", text)
			return text

		processor = BatchProcessor(timeout=self.config.timeout)
		summary = await processor.execute([BatchItem(a.id, a) for a in agents], draft)
		state = self._record(state.session_id, summary)
		await self._notify(state)

		if summary.status == BatchStatus.FAILED:
			raise TurnFailure(turn, "all agents failed to draft")
		return {r.item_id: r.result for r in summary.succeeded}

	async def _run_reviews(
		self,
		state: SessionState,
		paths: SessionPaths,
		agents: list[AgentConfig],
		drafts: dict[str, str],
	) -> dict[str, str]:
		"""
		Peer review phase over a ring of the agents that drafted.

		Agent i reviews agent i+1 mod n and may revise its own plan. A failed
		review keeps that agent's draft. Returns plan texts keyed by plan id.
		"""
		turn = state.turn
		reviewers = [agent for agent in agents if agent.id in drafts]
		plan_ids = state.agent_plan_ids
		plans = {plan_ids[agent.id]: drafts[agent.id] for agent in reviewers}
		if len(reviewers) < 2:
			logger.info(f"Session {state.session_id}: one draft, skipping peer review")
			return plans

		snapshot_dir = paths.turn_snapshot_dir(turn)
		state = self._mark(state.session_id, [a.id for a in reviewers], AgentStatus.WORKING)
		await self._notify(state)

		peers = {
			agent.id: reviewers[(i + 1) % len(reviewers)]
			for i, agent in enumerate(reviewers)
		}

		async def review(item: BatchItem[AgentConfig]) -> str:
			agent = item.data
			peer = peers[agent.id]
			plan_id = plan_ids[agent.id]
			plan_file = paths.agent_plan_file(plan_id)
			context = self._context(state, paths, agent.id, plan_id, plan_file)

			text = await self.adapter_factory(agent).review(
				drafts[agent.id],
				drafts[peer.id],
				context,
				peer_id=plan_ids[peer.id],
			)
			if not text or not text.strip():
				raise AgentFailure(agent.id, "No output produced")
			write_text_atomic(plan_file, text)
			write_text_atomic(snapshot_dir / f"{plan_id}.review.md", text)
			return text

		processor = BatchProcessor(timeout=self.config.timeout)
		summary = await processor.execute([BatchItem(a.id, a) for a in reviewers], review)
		state = self._record(state.session_id, summary)
		await self._notify(state)

		if summary.status == BatchStatus.FAILED:
			raise TurnFailure(turn, "all agents failed to review")
		for result in summary.succeeded:
			plans[plan_ids[result.item_id]] = result.result
		return plans

	async def _run_synthesis(
		self,
		state: SessionState,
		paths: SessionPaths,
		synthesizer: AgentConfig,
		plans: dict[str, str],
	) -> str:
		"""Merge the plans into the turn document's content."""
		turn = state.turn
		if len(plans) == 1:
			return next(iter(plans.values()))

		user_diff = None
		if turn > 1:
			bundle = summarize_changes(
				read_text(paths.turn_snapshot_file(turn - 1)) or "",
				read_text(paths.turn_file(turn - 1)) or "",
			)
			user_diff = bundle.render() or None

		output_file = paths.turn_snapshot_dir(turn) / "synthesis.md"
		context = self._context(state, paths, synthesizer.id, synthesizer.id, output_file)

		async def synthesize(item: BatchItem[AgentConfig]) -> str:
			text = await self.adapter_factory(item.data).synthesize(plans, user_diff, context)
			if not text or not text.strip():
				raise AgentFailure(item.data.id, "No output produced")
			return text

		processor = BatchProcessor(timeout=self.config.timeout)
		summary = await processor.execute([BatchItem(synthesizer.id, synthesizer)], synthesize)
		result = summary.results[0]
		if not result.success:
			raise TurnFailure(turn, f"synthesis failed: {result.error}")
		return result.result

"""
Agent adapter contract.

The orchestrator only sees ``draft``/``review``/``synthesize``. Agents
communicate through content alone: each call gets text in and returns
text, and may also write its result to ``context.output_file``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..config import AgentConfig
from ..errors import AgentFailure
from ..prompts import draft_prompt, review_prompt, synthesis_prompt
from ..session.store import read_text, write_text_atomic

logger = logging.getLogger(__name__)

ERROR_PATTERNS = (
	"unexpected argument",
	"invalid option",
	"command not found",
	"permission denied",
	"timeout",
	"rate limit",
)

MAX_SUMMARY_LENGTH = 200


def extract_error_summary(output: str) -> str:
	"""Pick one concise line out of a failed tool's output."""
	lines = [line.strip() for line in output.strip().splitlines()]

	for line in lines:
		if line.lower().startswith("error:"):
			return line

	for line in lines:
		if any(pattern in line.lower() for pattern in ERROR_PATTERNS):
			return line

	for line in lines:
		if line:
			return line if len(line) <= MAX_SUMMARY_LENGTH else line[:MAX_SUMMARY_LENGTH] + "..."

	return "No output produced"


@dataclass
class AgentCallContext:
	"""Where one call reads and writes: the file side of the agent protocol."""
	agent_id: str
	task: str
	turn: int
	output_file: Path
	log_file: Path
	session_file: Path
	workdir: Path


class AgentAdapter(ABC):
	"""Uniform capability interface over one configured agent identity."""

	def __init__(self, config: AgentConfig):
		self.config = config

	@property
	def agent_id(self) -> str:
		return self.config.id

	@property
	def name(self) -> str:
		return f"{self.config.type.value} ({self.config.model})"

	@abstractmethod
	async def draft(
		self,
		task: str,
		prior_content: Optional[str],
		feedback: Optional[str],
		context: AgentCallContext,
	) -> str:
		"""Write (turn 1) or refine (later turns) this agent's plan."""

	@abstractmethod
	async def review(
		self,
		own_draft: str,
		peer_draft: str,
		context: AgentCallContext,
		peer_id: str = "",
	) -> str:
		"""Review one peer's draft and return this agent's revised plan."""

	@abstractmethod
	async def synthesize(
		self,
		plans: dict[str, str],
		user_diff: Optional[str],
		context: AgentCallContext,
	) -> str:
		"""Merge per-plan texts into the unified turn document."""


class CLIAgentAdapter(AgentAdapter):
	"""
	Adapter driving an external CLI tool as a subprocess.

	The prompt goes to stdin. The result is the output file if the tool
	wrote it during the call, otherwise the tool's reported answer.
	Cancellation (the orchestrator's per-call timeout) kills the process.
	"""

	executable: str = ""

	@abstractmethod
	def build_command(self, resume_token: Optional[str], context: AgentCallContext) -> list[str]:
		"""Command line for one call."""

	@abstractmethod
	def parse_output(self, stdout: str) -> tuple[str, Optional[str]]:
		"""Return ``(answer_text, resume_token)`` from the tool's stdout."""

	def prepare_prompt(self, prompt: str) -> str:
		return prompt

	async def draft(self, task, prior_content, feedback, context):
		prompt = draft_prompt(
			task=task,
			turn=context.turn,
			output_file=str(context.output_file),
			prior_content=prior_content,
			feedback=feedback,
		)
		return await self.run(prompt, context)

	async def review(self, own_draft, peer_draft, context, peer_id=""):
		prompt = review_prompt(
			task=context.task,
			own_draft=own_draft,
			peer_id=peer_id or "peer",
			peer_draft=peer_draft,
			output_file=str(context.output_file),
		)
		return await self.run(prompt, context)

	async def synthesize(self, plans, user_diff, context):
		prompt = synthesis_prompt(
			task=context.task,
			plans=plans,
			output_file=str(context.output_file),
			user_diff=user_diff,
		)
		return await self.run(prompt, context)

	async def run(self, prompt: str, context: AgentCallContext) -> str:
		"""
		Run the tool once.

		Raises:
			AgentFailure: the tool is missing, exited non-zero or produced nothing
		"""
		resume_token = (read_text(context.session_file) or "").strip() or None
		cmd = self.build_command(resume_token, context)
		before = _file_signature(context.output_file)

		logger.info(f"Running {self.name} for {context.agent_id} (turn {context.turn})")
		try:
			process = await asyncio.create_subprocess_exec(
				*cmd,
				stdin=asyncio.subprocess.PIPE,
				stdout=asyncio.subprocess.PIPE,
				stderr=asyncio.subprocess.PIPE,
				cwd=str(context.workdir),
			)
		except FileNotFoundError as e:
			raise AgentFailure(context.agent_id, f"command not found: {cmd[0]}") from e

		try:
			stdout_bytes, stderr_bytes = await process.communicate(
				input=self.prepare_prompt(prompt).encode("utf-8"),
			)
		except asyncio.CancelledError:
			if process.returncode is None:
				process.kill()
				await process.wait()
			self._append_log(context, cmd, "", "cancelled (timeout)\n")
			raise

		stdout = stdout_bytes.decode("utf-8", errors="replace")
		stderr = stderr_bytes.decode("utf-8", errors="replace")
		self._append_log(context, cmd, stdout, stderr)

		if process.returncode != 0:
			summary = extract_error_summary(stderr or stdout)
			raise AgentFailure(context.agent_id, f"{self.executable} exited with code {process.returncode}: {summary}")

		answer, new_token = self.parse_output(stdout)
		if new_token:
			write_text_atomic(context.session_file, new_token)

		if _file_signature(context.output_file) != before:
			written = read_text(context.output_file)
			if written and written.strip():
				return written

		if not answer.strip():
			raise AgentFailure(context.agent_id, "No output produced")
		return answer

	def _append_log(self, context: AgentCallContext, cmd: list[str], stdout: str, stderr: str) -> None:
		context.log_file.parent.mkdir(parents=True, exist_ok=True)
		stamp = datetime.now(timezone.utc).isoformat()
		with open(context.log_file, "a", encoding="utf-8") as f:
			f.write(f"\n{'=' * 60}\n=== {stamp} turn {context.turn}: {cmd[0]} ===\n{'=' * 60}\n\n")
			f.write(stdout)
			if stderr:
				f.write("\n--- stderr ---\n")
				f.write(stderr)


def _file_signature(path: Path) -> Optional[tuple[int, int]]:
	try:
		stat = path.stat()
	except FileNotFoundError:
		return None
	return (stat.st_mtime_ns, stat.st_size)

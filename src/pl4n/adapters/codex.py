"""Codex CLI adapter."""

import json
import logging
from typing import Optional

from .base import AgentCallContext, CLIAgentAdapter

logger = logging.getLogger(__name__)


class CodexAdapter(CLIAgentAdapter):
	"""
	Runs ``codex exec --json``, reading the prompt from stdin.

	Output is a JSON-lines event stream: ``thread.started`` carries the
	thread id for resuming, completed ``agent_message`` items carry the text.
	"""

	executable = "codex"

	def build_command(self, resume_token: Optional[str], context: AgentCallContext) -> list[str]:
		cmd = [
			self.executable,
			"exec",
			"--json",
			"--model", self.config.model,
			"--full-auto",
			"--skip-git-repo-check",
		]
		if self.config.thinking:
			cmd.extend(["-c", f"model_reasoning_effort={self.config.thinking}"])
		cmd.extend(self.config.extra_args)
		if resume_token:
			cmd.extend(["resume", resume_token])
		cmd.append("-")
		return cmd

	def parse_output(self, stdout: str) -> tuple[str, Optional[str]]:
		thread_id: Optional[str] = None
		messages: list[str] = []

		for line in stdout.splitlines():
			line = line.strip()
			if not line.startswith("{"):
				continue
			try:
				event = json.loads(line)
			except json.JSONDecodeError:
				continue

			event_type = event.get("type")
			if event_type == "thread.started":
				thread_id = event.get("thread_id") or thread_id
			elif event_type == "item.completed":
				item = event.get("item") or {}
				if item.get("type") == "agent_message" and item.get("text"):
					messages.append(item["text"])

		if not messages and thread_id is None:
			logger.debug("codex output had no events, using raw stdout")
			return stdout, None
		# The last message is the final answer
		return (messages[-1] if messages else ""), thread_id

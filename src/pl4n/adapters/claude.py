"""Claude Code CLI adapter."""

import json
import logging
from typing import Optional

from .base import AgentCallContext, CLIAgentAdapter

logger = logging.getLogger(__name__)


class ClaudeAdapter(CLIAgentAdapter):
	"""
	Runs ``claude --print`` with JSON output.

	The JSON result carries the answer text (``result``) and the
	conversation id (``session_id``) used to resume on the next turn.
	"""

	executable = "claude"

	def build_command(self, resume_token: Optional[str], context: AgentCallContext) -> list[str]:
		cmd = [
			self.executable,
			"--print",
			"--output-format", "json",
			"--model", self.config.model,
			"--permission-mode", "acceptEdits",
		]
		if resume_token:
			cmd.extend(["--resume", resume_token])
		cmd.extend(self.config.extra_args)
		return cmd

	def prepare_prompt(self, prompt: str) -> str:
		# Claude reads the thinking budget from a keyword in the prompt itself
		if self.config.thinking:
			return f"{self.config.thinking}\n\n{prompt}"
		return prompt

	def parse_output(self, stdout: str) -> tuple[str, Optional[str]]:
		try:
			data = json.loads(stdout)
		except json.JSONDecodeError:
			logger.debug("claude output was not JSON, using raw stdout")
			return stdout, None

		if not isinstance(data, dict):
			return stdout, None
		return str(data.get("result") or ""), data.get("session_id")

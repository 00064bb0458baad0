"""Tests for agent adapters and the prompts they send."""

import asyncio
import json
import os
import shlex
from pathlib import Path
from typing import Optional

import pytest

from pl4n.adapters import ClaudeAdapter, CodexAdapter, create_adapter, extract_error_summary
from pl4n.adapters.base import AgentCallContext, CLIAgentAdapter
from pl4n.config import AgentConfig, AgentType
from pl4n.errors import AgentFailure
from pl4n.prompts import draft_prompt, review_prompt, synthesis_prompt


def make_context(tmp_path: Path) -> AgentCallContext:
	return AgentCallContext(
		agent_id="opus",
		task="Add OAuth login",
		turn=1,
		output_file=tmp_path / "plans" / "brave-otter.md",
		log_file=tmp_path / "agents" / "brave-otter" / "agent.log",
		session_file=tmp_path / "agents" / "brave-otter" / "session.txt",
		workdir=tmp_path,
	)


class ShellAdapter(CLIAgentAdapter):
	"""Runs a shell snippet in place of a real planning tool."""

	executable = "sh"

	def __init__(self, script: str, token: Optional[str] = None):
		super().__init__(AgentConfig(id="opus", type=AgentType.CLAUDE, model="test"))
		self.script = script
		self.token = token
		self.seen_tokens: list[Optional[str]] = []

	def build_command(self, resume_token, context):
		self.seen_tokens.append(resume_token)
		return ["sh", "-c", self.script.format(out=shlex.quote(str(context.output_file)))]

	def parse_output(self, stdout):
		return stdout, self.token


class TestErrorSummary:
	def test_error_prefix_wins(self):
		output = "loading...\nrate limit soon\nError: invalid API key\n"
		assert extract_error_summary(output) == "Error: invalid API key"

	def test_known_pattern(self):
		assert extract_error_summary("starting\nbash: codex: command not found\n") == "bash: codex: command not found"

	def test_first_line_truncated(self):
		summary = extract_error_summary("x" * 500)
		assert summary == "x" * 200 + "..."

	def test_empty(self):
		assert extract_error_summary("  \n") == "No output produced"


class TestCLIAgentAdapter:
	@pytest.mark.asyncio
	async def test_stdout_answer(self, tmp_path: Path):
		adapter = ShellAdapter("cat > /dev/null; echo '# Plan from stdout'")
		result = await adapter.run("prompt", make_context(tmp_path))
		assert result == "# Plan from stdout\n"

	@pytest.mark.asyncio
	async def test_prompt_sent_on_stdin(self, tmp_path: Path):
		adapter = ShellAdapter("cat")
		result = await adapter.run("# Echoed prompt", make_context(tmp_path))
		assert result == "# Echoed prompt"

	@pytest.mark.asyncio
	async def test_output_file_preferred(self, tmp_path: Path):
		context = make_context(tmp_path)
		context.output_file.parent.mkdir(parents=True)
		context.output_file.write_text("# Stale plan\n")
		adapter = ShellAdapter("cat > /dev/null; printf '# Plan from file\\n' > {out}; echo 'Wrote the plan.'")

		result = await adapter.run("prompt", context)
		assert result == "# Plan from file\n"

	@pytest.mark.asyncio
	async def test_untouched_output_file_ignored(self, tmp_path: Path):
		context = make_context(tmp_path)
		context.output_file.parent.mkdir(parents=True)
		context.output_file.write_text("# Last turn's plan\n")
		adapter = ShellAdapter("cat > /dev/null; echo '# Fresh answer'")

		assert await adapter.run("prompt", context) == "# Fresh answer\n"

	@pytest.mark.asyncio
	async def test_non_zero_exit(self, tmp_path: Path):
		adapter = ShellAdapter("cat > /dev/null; echo 'Error: quota exceeded' >&2; exit 3")
		with pytest.raises(AgentFailure) as exc_info:
			await adapter.run("prompt", make_context(tmp_path))
		assert exc_info.value.agent_id == "opus"
		assert "exited with code 3" in exc_info.value.message
		assert "Error: quota exceeded" in exc_info.value.message

	@pytest.mark.asyncio
	async def test_missing_command(self, tmp_path: Path):
		adapter = ShellAdapter("")
		adapter.build_command = lambda token, context: ["pl4n-no-such-tool"]
		with pytest.raises(AgentFailure, match="command not found: pl4n-no-such-tool"):
			await adapter.run("prompt", make_context(tmp_path))

	@pytest.mark.asyncio
	async def test_empty_output(self, tmp_path: Path):
		adapter = ShellAdapter("cat > /dev/null")
		with pytest.raises(AgentFailure, match="No output produced"):
			await adapter.run("prompt", make_context(tmp_path))

	@pytest.mark.asyncio
	async def test_resume_token_round_trip(self, tmp_path: Path):
		context = make_context(tmp_path)
		adapter = ShellAdapter("cat > /dev/null; echo plan", token="conv-123")

		await adapter.run("prompt", context)
		await adapter.run("prompt", context)

		assert adapter.seen_tokens == [None, "conv-123"]
		assert context.session_file.read_text() == "conv-123"

	@pytest.mark.asyncio
	async def test_output_logged(self, tmp_path: Path):
		context = make_context(tmp_path)
		adapter = ShellAdapter("cat > /dev/null; echo planned; echo warming up >&2")
		await adapter.run("prompt", context)

		log = context.log_file.read_text()
		assert "turn 1: sh" in log
		assert "planned" in log
		assert "--- stderr ---\nwarming up" in log

	@pytest.mark.asyncio
	async def test_cancel_kills_process(self, tmp_path: Path):
		context = make_context(tmp_path)
		pid_file = tmp_path / "pid"
		adapter = ShellAdapter(f"echo $$ > {shlex.quote(str(pid_file))}; exec sleep 30")

		with pytest.raises(asyncio.TimeoutError):
			await asyncio.wait_for(adapter.run("prompt", context), timeout=0.5)

		pid = int(pid_file.read_text())
		with pytest.raises(ProcessLookupError):
			os.kill(pid, 0)
		assert "cancelled" in context.log_file.read_text()


class TestClaudeAdapter:
	def make(self, **overrides) -> ClaudeAdapter:
		fields = {"id": "opus", "type": AgentType.CLAUDE, "model": "opus"}
		fields.update(overrides)
		return ClaudeAdapter(AgentConfig(**fields))

	def test_build_command(self, tmp_path: Path):
		cmd = self.make(extra_args=["--verbose"]).build_command(None, make_context(tmp_path))
		assert cmd[:2] == ["claude", "--print"]
		assert cmd[cmd.index("--model") + 1] == "opus"
		assert cmd[cmd.index("--output-format") + 1] == "json"
		assert "--resume" not in cmd
		assert cmd[-1] == "--verbose"

	def test_build_command_resumes(self, tmp_path: Path):
		cmd = self.make().build_command("abc-123", make_context(tmp_path))
		assert cmd[cmd.index("--resume") + 1] == "abc-123"

	def test_thinking_prefixes_prompt(self):
		assert self.make(thinking="ultrathink").prepare_prompt("Plan it") == "ultrathink\n\nPlan it"
		assert self.make().prepare_prompt("Plan it") == "Plan it"

	def test_parse_json(self):
		stdout = json.dumps({"type": "result", "result": "# Plan", "session_id": "abc-123"})
		assert self.make().parse_output(stdout) == ("# Plan", "abc-123")

	def test_parse_non_json(self):
		assert self.make().parse_output("# Raw plan\n") == ("# Raw plan\n", None)


class TestCodexAdapter:
	def make(self, **overrides) -> CodexAdapter:
		fields = {"id": "codex", "type": AgentType.CODEX, "model": "gpt-5.2-codex"}
		fields.update(overrides)
		return CodexAdapter(AgentConfig(**fields))

	def test_build_command(self, tmp_path: Path):
		cmd = self.make(thinking="xhigh").build_command(None, make_context(tmp_path))
		assert cmd[:3] == ["codex", "exec", "--json"]
		assert "model_reasoning_effort=xhigh" in cmd
		assert "resume" not in cmd
		assert cmd[-1] == "-"

	def test_build_command_resumes(self, tmp_path: Path):
		cmd = self.make().build_command("thread-9", make_context(tmp_path))
		assert cmd[-3:] == ["resume", "thread-9", "-"]

	def test_parse_events(self):
		events = [
			{"type": "thread.started", "thread_id": "thread-9"},
			{"type": "item.completed", "item": {"type": "reasoning", "text": "thinking"}},
			{"type": "item.completed", "item": {"type": "agent_message", "text": "first"}},
			{"type": "item.completed", "item": {"type": "agent_message", "text": "# Final plan"}},
		]
		stdout = "\n".join(json.dumps(e) for e in events) + "\nnot json\n"
		assert self.make().parse_output(stdout) == ("# Final plan", "thread-9")

	def test_parse_without_events(self):
		assert self.make().parse_output("plain text") == ("plain text", None)


class TestCreateAdapter:
	def test_known_types(self):
		assert isinstance(create_adapter(AgentConfig(id="a", type="claude", model="m")), ClaudeAdapter)
		assert isinstance(create_adapter(AgentConfig(id="b", type="codex", model="m")), CodexAdapter)

	def test_name(self):
		adapter = create_adapter(AgentConfig(id="a", type="codex", model="gpt"))
		assert adapter.agent_id == "a"
		assert adapter.name == "codex (gpt)"


class TestPrompts:
	def test_first_turn(self):
		prompt = draft_prompt("Add OAuth login", 1, "/tmp/plan.md")
		assert "Turn 1" in prompt
		assert "Add OAuth login" in prompt
		assert "`/tmp/plan.md`" in prompt
		assert "- **Answer:**" in prompt

	def test_later_turn_includes_prior_plan_and_feedback(self):
		prompt = draft_prompt("Task", 3, "/tmp/plan.md", prior_content="# Old plan", feedback="+ use {braces}")
		assert "Turn 3" in prompt
		assert "# Old plan" in prompt
		assert "+ use {braces}" in prompt

	def test_review(self):
		prompt = review_prompt("Task", "mine", "calm-heron", "theirs", "/tmp/plan.md")
		assert "## Peer's Draft (calm-heron)\ntheirs" in prompt

	def test_synthesis_uses_plan_ids(self):
		prompt = synthesis_prompt("Task", {"brave-otter": "A", "calm-heron": "B"}, "/tmp/out.md")
		assert "### brave-otter\n\nA" in prompt
		assert "### calm-heron\n\nB" in prompt
		assert "User's Changes" not in prompt

		with_diff = synthesis_prompt("Task", {"brave-otter": "A"}, "/tmp/out.md", user_diff="+ must use SAML")
		assert "+ must use SAML" in with_diff

"""
Session Store - directory-backed session storage.

Features:
- One directory per session under ``<pl4n_dir>/sessions``
- Atomic (write-temp-fsync-rename) writes for state and turn documents
- Per-session file locks serializing state updates and orchestrator runs
- Session and global access tokens
"""

import fcntl
import hmac
import logging
import os
import re
import secrets
import shutil
import tempfile
from pathlib import Path
from typing import IO, Callable, Optional

import yaml

from ..config import AgentRoster
from ..errors import SessionNotFoundError, ValidationError
from ..names import generate_unique_name
from .models import Phase, SessionPaths, SessionState, utc_now

logger = logging.getLogger(__name__)

VALID_SESSION_ID = re.compile(r"^[a-z0-9][a-z0-9-]{0,63}$")

ANSWER_MARKER = re.compile(r"^(?:[-*]\s+)?\*{0,2}Answer:\*{0,2}(.*)$")

# Markdown heading, a thematic break or the next question ends an answer field
SECTION_BREAK = re.compile(r"^(?:#{1,6}(?:\s|$)|---|\*\*Q)")


def mtime_token(path: Path) -> int:
	"""Modification token of a file: its mtime in integer microseconds."""
	return path.stat().st_mtime_ns // 1000


def write_text_atomic(path: Path, text: str, after_token: Optional[int] = None) -> None:
	"""
	Atomic write: write to a temp file, fsync, then rename over ``path``.

	When ``after_token`` is given the new file's mtime is forced past it, so a
	successful write always yields a strictly larger token even on filesystems
	with coarse timestamps.
	"""
	path.parent.mkdir(parents=True, exist_ok=True)
	fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
	try:
		with os.fdopen(fd, "w", encoding="utf-8") as f:
			f.write(text)
			f.flush()
			os.fsync(f.fileno())
		if after_token is not None:
			stat = os.stat(tmp_path)
			if stat.st_mtime_ns // 1000 <= after_token:
				os.utime(tmp_path, ns=(stat.st_atime_ns, (after_token + 1) * 1000))
		os.replace(tmp_path, path)
	except BaseException:
		if os.path.exists(tmp_path):
			os.unlink(tmp_path)
		raise


def read_text(path: Path) -> Optional[str]:
	"""Read a UTF-8 file, or None if it does not exist."""
	try:
		return path.read_text(encoding="utf-8")
	except FileNotFoundError:
		return None


def has_unanswered_questions(content: str) -> bool:
	"""
	True if the document holds an ``Answer:`` field left empty.

	An answer counts when text follows the marker on the same line, or when
	the next line carries content. A blank next line, a section break
	(a Markdown heading or ``---``), the next question, another answer field or the end
	of the document leave it unanswered.
	"""
	lines = content.splitlines()
	for i, line in enumerate(lines):
		match = ANSWER_MARKER.match(line.strip())
		if not match:
			continue
		if match.group(1).strip().strip("*").strip():
			continue
		if i + 1 >= len(lines):
			return True
		next_line = lines[i + 1].strip()
		if not next_line:
			return True
		if SECTION_BREAK.match(next_line) or ANSWER_MARKER.match(next_line):
			return True
	return False


class SessionLock:
	"""
	Blocking exclusive ``flock`` on a per-session lock file.

	Locks are per open file, so two holders in one process also exclude
	each other. Never nest two locks of the same name.
	"""

	def __init__(self, path: Path):
		self.path = path
		self._file: Optional[IO[str]] = None

	def acquire(self) -> None:
		self.path.parent.mkdir(parents=True, exist_ok=True)
		self._file = open(self.path, "a")
		fcntl.flock(self._file.fileno(), fcntl.LOCK_EX)

	def release(self) -> None:
		if self._file:
			fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
			self._file.close()
			self._file = None

	def __enter__(self) -> "SessionLock":
		self.acquire()
		return self

	def __exit__(self, exc_type, exc, tb) -> None:
		self.release()


class SessionManager:
	"""
	Directory-backed session storage.

	Usage:
		manager = SessionManager(Path(".pl4n"))
		state = manager.create_session("Add OAuth login")

		with manager.lock(state.session_id):
			state = manager.require_session(state.session_id)
			...
			manager.save_state(state)
	"""

	def __init__(self, pl4n_dir: Path):
		self.pl4n_dir = Path(pl4n_dir)
		self.sessions_dir = self.pl4n_dir / "sessions"
		self.token_file = self.pl4n_dir / "token"

	def get_paths(self, session_id: str) -> SessionPaths:
		if not VALID_SESSION_ID.match(session_id or ""):
			raise ValidationError(f"Invalid session id: {session_id!r}")
		return SessionPaths(self.sessions_dir / session_id)

	def exists(self, session_id: str) -> bool:
		return self.get_paths(session_id).state.exists()

	def lock(self, session_id: str, name: str = "state") -> SessionLock:
		"""Lock for a short state update (``state``) or a whole orchestrator run (``run``)."""
		return SessionLock(self.get_paths(session_id).lock_file(name))

	def create_session(self, task: str, roster: Optional[AgentRoster] = None) -> SessionState:
		"""
		Create a new session at turn 1, phase ``initializing``.

		Args:
			task: Free-text task description
			roster: Agent roster snapshotted into the metadata file

		Returns:
			The new SessionState
		"""
		if not task or not task.strip():
			raise ValidationError("Task must be a non-empty string")

		self.sessions_dir.mkdir(parents=True, exist_ok=True)
		session_id = generate_unique_name(is_taken=lambda name: (self.sessions_dir / name).exists())
		paths = self.get_paths(session_id)
		paths.root.mkdir(parents=True)
		paths.turns.mkdir()
		paths.agents.mkdir()
		paths.plans.mkdir()

		now = utc_now()
		state = SessionState(
			session_id=session_id,
			task=task,
			turn=1,
			phase=Phase.INITIALIZING,
			created_at=now,
			updated_at=now,
			session_token=secrets.token_urlsafe(12),
		)

		meta = {
			"session_id": session_id,
			"task": task,
			"created_at": now.isoformat(),
		}
		if roster is not None:
			meta["config"] = roster.to_config_dict()

		write_text_atomic(paths.meta, yaml.safe_dump(meta, sort_keys=False, allow_unicode=True))
		write_text_atomic(paths.input, task if task.endswith("\n") else f"{task}\n")
		self.save_state(state, update_timestamp=False)
		logger.info(f"Created session {session_id}")
		return state

	def load_session(self, session_id: str) -> Optional[SessionState]:
		"""Load a session, or None if it does not exist."""
		paths = self.get_paths(session_id)
		meta_text = read_text(paths.meta)
		state_text = read_text(paths.state)
		if meta_text is None or state_text is None:
			return None

		meta = yaml.safe_load(meta_text) or {}
		data = yaml.safe_load(state_text) or {}
		return SessionState(
			session_id=session_id,
			task=meta.get("task", ""),
			created_at=meta.get("created_at"),
			turn=data.get("turn", 1),
			phase=data.get("phase", Phase.INITIALIZING.value),
			updated_at=data.get("updated_at"),
			archived=data.get("archived", False),
			agents=data.get("agents") or {},
			agent_plan_ids=data.get("agent_plan_ids") or {},
			agent_errors=data.get("agent_errors") or {},
			session_token=data.get("session_token"),
		)

	def require_session(self, session_id: str) -> SessionState:
		"""Load a session or raise SessionNotFoundError."""
		state = self.load_session(session_id)
		if state is None:
			raise SessionNotFoundError(session_id)
		return state

	def load_meta(self, session_id: str) -> dict:
		text = read_text(self.get_paths(session_id).meta)
		if text is None:
			raise SessionNotFoundError(session_id)
		return yaml.safe_load(text) or {}

	def save_state(self, state: SessionState, update_timestamp: bool = True) -> None:
		"""Atomically rewrite ``state.yaml``."""
		if update_timestamp:
			state.updated_at = utc_now()

		data = {
			"turn": state.turn,
			"phase": state.phase.value,
			"updated_at": state.updated_at.isoformat(),
			"archived": state.archived,
			"agents": {agent_id: status.value for agent_id, status in state.agents.items()},
			"agent_plan_ids": dict(state.agent_plan_ids),
			"agent_errors": dict(state.agent_errors),
		}
		if state.session_token:
			data["session_token"] = state.session_token

		paths = self.get_paths(state.session_id)
		write_text_atomic(paths.state, yaml.safe_dump(data, sort_keys=False, allow_unicode=True))

	def update_state(self, session_id: str, mutate: Callable[[SessionState], None]) -> SessionState:
		"""Re-read, mutate and save the state under the session's state lock."""
		with self.lock(session_id):
			state = self.require_session(session_id)
			mutate(state)
			self.save_state(state)
			return state

	def list_sessions(self, include_archived: bool = False) -> list[SessionState]:
		"""List sessions, most recently updated first."""
		if not self.sessions_dir.exists():
			return []

		sessions = []
		for entry in self.sessions_dir.iterdir():
			if not entry.is_dir() or not VALID_SESSION_ID.match(entry.name):
				continue
			state = self.load_session(entry.name)
			if state is None:
				continue
			if state.archived and not include_archived:
				continue
			sessions.append(state)

		return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

	def clean_session(self, session_id: str) -> bool:
		"""Remove a session directory tree. Irreversible."""
		paths = self.get_paths(session_id)
		if not paths.root.exists():
			return False
		shutil.rmtree(paths.root)
		logger.info(f"Removed session {session_id}")
		return True

	def ensure_session_token(self, session_id: str) -> str:
		"""Return the session token, assigning one if the session predates tokens."""
		state = self.require_session(session_id)
		if state.session_token:
			return state.session_token

		def assign(s: SessionState) -> None:
			if not s.session_token:
				s.session_token = secrets.token_urlsafe(12)

		return self.update_state(session_id, assign).session_token

	def validate_session_token(self, session_id: str, token: Optional[str]) -> bool:
		if not token:
			return False
		try:
			state = self.load_session(session_id)
		except ValidationError:
			return False
		if state is None or not state.session_token:
			return False
		return hmac.compare_digest(token, state.session_token)

	def ensure_global_token(self) -> str:
		"""Token guarding the session list; created on first use."""
		existing = (read_text(self.token_file) or "").strip()
		if existing:
			return existing
		token = secrets.token_urlsafe(12)
		write_text_atomic(self.token_file, f"{token}\n")
		return token

	def validate_global_token(self, token: Optional[str]) -> bool:
		if not token:
			return False
		stored = (read_text(self.token_file) or "").strip()
		return bool(stored) and hmac.compare_digest(token, stored)

	def read_turn(self, session_id: str, turn: int) -> Optional[str]:
		return read_text(self.get_paths(session_id).turn_file(turn))

	def has_questions(self, session_id: str) -> bool:
		"""True if the current turn document has an unanswered question."""
		state = self.require_session(session_id)
		content = self.read_turn(session_id, state.turn)
		if content is None:
			return False
		return has_unanswered_questions(content)

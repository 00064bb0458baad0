"""
Configuration: storage paths, per-call timeout and the agent roster.

Precedence: explicit argument > PL4N_* environment variables > pl4n.toml > defaults.
The project file lives at ``<pl4n_dir>/pl4n.toml``; a user-level
``config.toml`` from the platform config directory is used when the project
has none.
"""

import os
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import platformdirs
from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError

APP_NAME = "pl4n"
APP_AUTHOR = "pl4n"

DEFAULT_PL4N_DIR = ".pl4n"
DEFAULT_TIMEOUT_SECONDS = 600.0


class AgentType(str, Enum):
	"""Concrete external tool behind an agent identity."""
	CLAUDE = "claude"
	CODEX = "codex"


class AgentConfig(BaseModel):
	"""One configured agent identity."""
	id: str = Field(pattern=r"^[A-Za-z0-9_-]+$", description="Stable agent identity")
	type: AgentType = Field(description="External tool driving this agent")
	model: str = Field(min_length=1)
	thinking: Optional[str] = Field(default=None, description="Reasoning effort hint")
	enabled: bool = Field(default=True)
	extra_args: list[str] = Field(default_factory=list, description="Extra CLI arguments")


def _default_agents() -> list[AgentConfig]:
	return [
		AgentConfig(id="opus", type=AgentType.CLAUDE, model="opus", thinking="ultrathink"),
		AgentConfig(id="codex", type=AgentType.CODEX, model="gpt-5.2-codex", thinking="xhigh"),
	]


def _default_synthesizer() -> AgentConfig:
	return AgentConfig(id="synthesizer", type=AgentType.CLAUDE, model="opus", thinking="ultrathink")


class AgentRoster(BaseModel):
	"""The drafting agents plus the designated synthesizer."""
	agents: list[AgentConfig] = Field(default_factory=_default_agents)
	synthesizer: AgentConfig = Field(default_factory=_default_synthesizer)

	@model_validator(mode="after")
	def _check_agents(self) -> "AgentRoster":
		ids = [agent.id for agent in self.agents]
		duplicates = sorted({agent_id for agent_id in ids if ids.count(agent_id) > 1})
		if duplicates:
			raise ValueError(f"duplicate agent ids: {', '.join(duplicates)}")
		if not any(agent.enabled for agent in self.agents):
			raise ValueError("agents must include at least one enabled agent")
		return self

	@property
	def enabled_agents(self) -> list[AgentConfig]:
		return [agent for agent in self.agents if agent.enabled]

	@property
	def agent_ids(self) -> list[str]:
		return [agent.id for agent in self.agents]

	@classmethod
	def from_config_data(cls, data: Any, source: str) -> "AgentRoster":
		"""Build a roster from parsed config data, naming ``source`` on failure."""
		if not isinstance(data, dict):
			raise ValidationError(f"Invalid config {source}: config must be a mapping")
		try:
			return cls.model_validate(data)
		except PydanticValidationError as e:
			first = e.errors()[0]
			location = ".".join(str(part) for part in first["loc"])
			detail = f"{location}: {first['msg']}" if location else first["msg"]
			raise ValidationError(f"Invalid config {source}: {detail}") from e

	def to_config_dict(self) -> dict:
		"""Snapshot stored in session metadata."""
		return self.model_dump(mode="json", exclude_defaults=True)


@dataclass
class Config:
	"""Central configuration for one pl4n storage root."""

	pl4n_dir: Path = field(default_factory=lambda: Path(DEFAULT_PL4N_DIR))
	user_config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR)))

	# User-configurable
	timeout: float = DEFAULT_TIMEOUT_SECONDS
	log_level: str = "WARNING"
	roster: AgentRoster = field(default_factory=AgentRoster)

	# Derived paths
	sessions_dir: Path = field(init=False)
	log_dir: Path = field(init=False)
	config_file: Path = field(init=False)
	token_file: Path = field(init=False)

	def __post_init__(self) -> None:
		self.sessions_dir = self.pl4n_dir / "sessions"
		self.log_dir = self.pl4n_dir / "logs"
		self.config_file = self.pl4n_dir / "pl4n.toml"
		self.token_file = self.pl4n_dir / "token"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.sessions_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)


def _apply_env_overrides(config: Config) -> Config:
	"""Apply PL4N_* environment variable overrides."""
	pl4n_dir = os.getenv("PL4N_DIR")
	if pl4n_dir:
		config.pl4n_dir = Path(pl4n_dir)

	timeout = os.getenv("PL4N_TIMEOUT")
	if timeout:
		try:
			config.timeout = float(timeout)
		except ValueError as e:
			raise ValidationError(f"PL4N_TIMEOUT must be a number, got {timeout!r}") from e
		if not config.timeout > 0:
			raise ValidationError(f"PL4N_TIMEOUT must be a positive number, got {timeout!r}")

	log_level = os.getenv("PL4N_LOG_LEVEL")
	if log_level:
		config.log_level = log_level

	# Recompute derived paths after overrides
	config.__post_init__()
	return config


def _resolve_toml(config: Config) -> Optional[Path]:
	for candidate in (config.config_file, config.user_config_dir / "config.toml"):
		if candidate.exists():
			return candidate
	return None


def _apply_toml(config: Config) -> Config:
	"""Apply pl4n.toml overrides if a config file exists."""
	toml_path = _resolve_toml(config)
	if toml_path is None:
		return config

	try:
		with open(toml_path, "rb") as f:
			data = tomllib.load(f)
	except tomllib.TOMLDecodeError as e:
		raise ValidationError(f"Invalid config {toml_path}: {e}") from e

	if "timeout" in data:
		if not isinstance(data["timeout"], (int, float)) or data["timeout"] <= 0:
			raise ValidationError(f"Invalid config {toml_path}: timeout must be a positive number")
		config.timeout = float(data["timeout"])
	if "log_level" in data:
		config.log_level = str(data["log_level"])

	roster_data = {key: data[key] for key in ("agents", "synthesizer") if key in data}
	if roster_data:
		config.roster = AgentRoster.from_config_data(roster_data, str(toml_path))
	return config


def load_config(pl4n_dir: Optional[Path] = None, timeout: Optional[float] = None) -> Config:
	"""Load config with precedence: arguments > env vars > pl4n.toml > defaults."""
	config = Config()
	config = _apply_env_overrides(config)
	if pl4n_dir is not None:
		config.pl4n_dir = Path(pl4n_dir)
		config.__post_init__()
	config = _apply_toml(config)
	# Env wins over the file for scalar settings
	config = _apply_env_overrides(config)
	if pl4n_dir is not None:
		config.pl4n_dir = Path(pl4n_dir)
		config.__post_init__()
	if timeout is not None:
		if timeout <= 0:
			raise ValidationError("timeout must be a positive number")
		config.timeout = timeout
	return config

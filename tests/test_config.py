"""Tests for the configuration system."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from pl4n.config import (
	DEFAULT_TIMEOUT_SECONDS,
	AgentRoster,
	AgentType,
	Config,
	_apply_env_overrides,
	load_config,
)
from pl4n.errors import ValidationError


def test_config_defaults(tmp_path: Path):
	"""Derived paths hang off the storage root."""
	config = Config(pl4n_dir=tmp_path / ".pl4n")
	assert config.sessions_dir == tmp_path / ".pl4n" / "sessions"
	assert config.log_dir == tmp_path / ".pl4n" / "logs"
	assert config.config_file == tmp_path / ".pl4n" / "pl4n.toml"
	assert config.token_file == tmp_path / ".pl4n" / "token"
	assert config.timeout == DEFAULT_TIMEOUT_SECONDS


def test_default_roster():
	roster = AgentRoster()
	assert roster.agent_ids == ["opus", "codex"]
	assert roster.agents[1].type == AgentType.CODEX
	assert roster.synthesizer.type == AgentType.CLAUDE


def test_config_env_overrides(tmp_path: Path):
	"""Environment variables should override defaults."""
	config = Config()
	with patch.dict(os.environ, {
		"PL4N_DIR": str(tmp_path / "custom"),
		"PL4N_TIMEOUT": "42",
		"PL4N_LOG_LEVEL": "DEBUG",
	}):
		config = _apply_env_overrides(config)
	assert config.pl4n_dir == tmp_path / "custom"
	# Derived paths should be recomputed
	assert config.sessions_dir == tmp_path / "custom" / "sessions"
	assert config.timeout == 42.0
	assert config.log_level == "DEBUG"


def test_bad_env_timeout():
	with patch.dict(os.environ, {"PL4N_TIMEOUT": "soon"}):
		with pytest.raises(ValidationError):
			_apply_env_overrides(Config())


@pytest.mark.parametrize("value", ["0", "-5", "nan"])
def test_non_positive_env_timeout(value):
	with patch.dict(os.environ, {"PL4N_TIMEOUT": value}):
		with pytest.raises(ValidationError, match="positive"):
			_apply_env_overrides(Config())


def test_config_ensure_dirs(tmp_path: Path):
	"""ensure_dirs should create all required directories."""
	config = Config(pl4n_dir=tmp_path / ".pl4n")
	assert not config.sessions_dir.exists()

	config.ensure_dirs()

	assert config.sessions_dir.exists()
	assert config.log_dir.exists()


def test_load_config_from_toml(tmp_path: Path):
	pl4n_dir = tmp_path / ".pl4n"
	pl4n_dir.mkdir()
	(pl4n_dir / "pl4n.toml").write_text(
		'timeout = 30\n'
		'\n'
		'[[agents]]\n'
		'id = "alpha"\n'
		'type = "claude"\n'
		'model = "sonnet"\n'
		'\n'
		'[[agents]]\n'
		'id = "beta"\n'
		'type = "codex"\n'
		'model = "gpt-5.2-codex"\n'
		'enabled = false\n'
		'\n'
		'[synthesizer]\n'
		'id = "merge"\n'
		'type = "claude"\n'
		'model = "opus"\n'
	)

	with patch.dict(os.environ, {}, clear=True):
		config = load_config(pl4n_dir=pl4n_dir)

	assert config.timeout == 30.0
	assert config.roster.agent_ids == ["alpha", "beta"]
	assert [a.id for a in config.roster.enabled_agents] == ["alpha"]
	assert config.roster.synthesizer.id == "merge"


def test_env_beats_toml(tmp_path: Path):
	pl4n_dir = tmp_path / ".pl4n"
	pl4n_dir.mkdir()
	(pl4n_dir / "pl4n.toml").write_text("timeout = 30\n")

	with patch.dict(os.environ, {"PL4N_TIMEOUT": "12"}, clear=True):
		config = load_config(pl4n_dir=pl4n_dir)
	assert config.timeout == 12.0


def test_argument_beats_env(tmp_path: Path):
	with patch.dict(os.environ, {"PL4N_TIMEOUT": "12"}, clear=True):
		config = load_config(pl4n_dir=tmp_path, timeout=3.5)
	assert config.timeout == 3.5


def test_invalid_toml_names_file(tmp_path: Path):
	pl4n_dir = tmp_path / ".pl4n"
	pl4n_dir.mkdir()
	(pl4n_dir / "pl4n.toml").write_text("timeout = \n")

	with patch.dict(os.environ, {}, clear=True):
		with pytest.raises(ValidationError, match="pl4n.toml"):
			load_config(pl4n_dir=pl4n_dir)


def test_roster_rejects_duplicate_ids():
	data = {"agents": [
		{"id": "a", "type": "claude", "model": "m"},
		{"id": "a", "type": "codex", "model": "m"},
	]}
	with pytest.raises(ValidationError, match="duplicate agent ids"):
		AgentRoster.from_config_data(data, "test.toml")


def test_roster_requires_enabled_agent():
	data = {"agents": [{"id": "a", "type": "claude", "model": "m", "enabled": False}]}
	with pytest.raises(ValidationError, match="at least one enabled agent"):
		AgentRoster.from_config_data(data, "test.toml")


def test_roster_rejects_bad_agent_id():
	data = {"agents": [{"id": "../escape", "type": "claude", "model": "m"}]}
	with pytest.raises(ValidationError, match="test.toml"):
		AgentRoster.from_config_data(data, "test.toml")


def test_roster_snapshot_round_trip():
	roster = AgentRoster.from_config_data(
		{"agents": [{"id": "solo", "type": "codex", "model": "m", "thinking": "high"}]},
		"test.toml",
	)
	restored = AgentRoster.from_config_data(roster.to_config_dict(), "meta.yaml")
	assert restored == roster

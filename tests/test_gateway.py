"""Tests for the concurrency gateway (optimistic saves, locking, approval)."""

import os
from pathlib import Path

import pytest

from pl4n.errors import (
	ConflictError,
	InvalidTransitionError,
	LockedError,
	NotFoundError,
	UnansweredQuestionsError,
	ValidationError,
)
from pl4n.gateway import ConcurrencyGateway
from pl4n.session import Phase, SessionManager, write_text_atomic

from tests.helpers import ANSWERED_PLAN, UNANSWERED_PLAN


def make_session(manager: SessionManager, phase: Phase = Phase.USER_REVIEW, content: str = ANSWERED_PLAN) -> str:
	"""A session sitting at ``phase`` with turn 1's document written."""
	state = manager.create_session("Add OAuth login")
	paths = manager.get_paths(state.session_id)
	write_text_atomic(paths.turn_file(1), content)
	write_text_atomic(paths.turn_snapshot_file(1), content)
	manager.update_state(state.session_id, lambda s: setattr(s, "phase", phase))
	return state.session_id


@pytest.fixture
def manager(tmp_path: Path) -> SessionManager:
	return SessionManager(tmp_path / ".pl4n")


@pytest.fixture
def gateway(manager: SessionManager) -> ConcurrencyGateway:
	return ConcurrencyGateway(manager)


class TestReadContent:
	def test_fields(self, manager, gateway):
		session_id = make_session(manager)
		data = gateway.read_content(session_id)

		assert data["content"] == ANSWERED_PLAN
		assert data["turn"] == 1
		assert data["phase"] == "user_review"
		assert data["readOnly"] is False
		assert data["archived"] is False
		assert data["hasAutosave"] is False
		assert data["autosave"] is None
		assert data["snapshot"] == ANSWERED_PLAN
		assert isinstance(data["mtime"], int)

	def test_read_only_while_drafting(self, manager, gateway):
		session_id = make_session(manager, phase=Phase.DRAFTING)
		assert gateway.read_content(session_id)["readOnly"] is True

	def test_missing_document(self, manager, gateway):
		state = manager.create_session("Task")
		with pytest.raises(NotFoundError, match="content not found"):
			gateway.read_content(state.session_id)


class TestSave:
	def test_token_strictly_increases(self, manager, gateway):
		session_id = make_session(manager)
		m0 = gateway.read_content(session_id)["mtime"]

		result = gateway.save(session_id, ANSWERED_PLAN + "\nMore.\n", m0)
		assert result["mtime"] > m0
		assert gateway.read_content(session_id)["mtime"] == result["mtime"]

	def test_stale_token_conflicts(self, manager, gateway):
		"""Two editors load m0; the first save wins, the second gets m1 back."""
		session_id = make_session(manager)
		m0 = gateway.read_content(session_id)["mtime"]

		m1 = gateway.save(session_id, "first editor\n", m0)["mtime"]
		with pytest.raises(ConflictError) as exc_info:
			gateway.save(session_id, "second editor\n", m0)

		assert exc_info.value.mtime == m1
		assert exc_info.value.content == "first editor\n"
		assert exc_info.value.to_dict() == {"error": "stale content", "mtime": m1}
		assert gateway.read_content(session_id)["content"] == "first editor\n"

	def test_save_clears_autosave(self, manager, gateway):
		session_id = make_session(manager)
		gateway.write_autosave(session_id, "draft in progress")
		m0 = gateway.read_content(session_id)["mtime"]

		gateway.save(session_id, "saved\n", m0)
		assert gateway.read_content(session_id)["hasAutosave"] is False

	@pytest.mark.parametrize("phase", [Phase.DRAFTING, Phase.PEER_REVIEW, Phase.SYNTHESIZING, Phase.ERROR])
	def test_locked_outside_user_review(self, manager, gateway, phase):
		session_id = make_session(manager, phase=phase)
		m0 = gateway.read_content(session_id)["mtime"]
		with pytest.raises(LockedError):
			gateway.save(session_id, "edit\n", m0)
		assert gateway.read_content(session_id)["content"] == ANSWERED_PLAN

	@pytest.mark.parametrize("mtime", ["123", None, True])
	def test_non_numeric_token_rejected(self, manager, gateway, mtime):
		session_id = make_session(manager)
		with pytest.raises(ValidationError):
			gateway.save(session_id, "edit\n", mtime)

	def test_non_string_content_rejected(self, manager, gateway):
		session_id = make_session(manager)
		m0 = gateway.read_content(session_id)["mtime"]
		with pytest.raises(ValidationError):
			gateway.save(session_id, {"text": "x"}, m0)


class TestAutosave:
	def test_autosave_never_touches_document(self, manager, gateway):
		session_id = make_session(manager)
		before = gateway.read_content(session_id)

		gateway.write_autosave(session_id, "unsaved edits")
		during = gateway.read_content(session_id)
		assert during["hasAutosave"] is True
		assert during["autosave"] == "unsaved edits"
		assert during["content"] == before["content"]
		assert during["mtime"] == before["mtime"]

		gateway.discard_autosave(session_id)
		after = gateway.read_content(session_id)
		assert after["hasAutosave"] is False
		assert after["content"] == before["content"]
		assert after["mtime"] == before["mtime"]

	def test_autosave_locked_after_approve(self, manager, gateway):
		session_id = make_session(manager)
		gateway.approve(session_id)
		with pytest.raises(LockedError):
			gateway.write_autosave(session_id, "late edits")
		with pytest.raises(LockedError):
			gateway.discard_autosave(session_id)


class TestContinue:
	def test_save_and_continue(self, manager, gateway):
		session_id = make_session(manager)
		m0 = gateway.read_content(session_id)["mtime"]

		state = gateway.save_and_continue(session_id, "edited\n", m0)
		assert state.turn == 2
		assert state.phase == Phase.DRAFTING

		paths = manager.get_paths(session_id)
		assert paths.turn_file(1).read_text() == "edited\n"
		assert manager.require_session(session_id).turn == 2

	def test_conflicting_continue_does_not_advance(self, manager, gateway):
		session_id = make_session(manager)
		m0 = gateway.read_content(session_id)["mtime"]
		gateway.save(session_id, "someone else\n", m0)

		with pytest.raises(ConflictError):
			gateway.save_and_continue(session_id, "mine\n", m0)
		state = manager.require_session(session_id)
		assert state.turn == 1
		assert state.phase == Phase.USER_REVIEW

	def test_advance_requires_user_review(self, manager, gateway):
		session_id = make_session(manager, phase=Phase.DRAFTING)
		with pytest.raises(InvalidTransitionError) as exc_info:
			gateway.advance_turn(session_id)
		assert exc_info.value.phase == "drafting"
		assert manager.require_session(session_id).turn == 1


class TestApprove:
	def test_approve_links_plan(self, manager, gateway):
		session_id = make_session(manager)
		state = gateway.approve(session_id)
		assert state.phase == Phase.APPROVED

		paths = manager.get_paths(session_id)
		assert paths.approved_plan.is_symlink()
		assert os.readlink(paths.approved_plan) == os.path.join("turns", "001.md")
		assert paths.approved_plan.read_text() == ANSWERED_PLAN

	def test_second_approve_is_locked(self, manager, gateway):
		session_id = make_session(manager)
		gateway.approve(session_id)

		with pytest.raises(LockedError):
			gateway.approve(session_id)
		paths = manager.get_paths(session_id)
		assert os.readlink(paths.approved_plan) == os.path.join("turns", "001.md")

	def test_save_after_approve_is_locked(self, manager, gateway):
		session_id = make_session(manager)
		m0 = gateway.read_content(session_id)["mtime"]
		gateway.approve(session_id)

		with pytest.raises(LockedError):
			gateway.save(session_id, "too late\n", m0)
		data = gateway.read_content(session_id)
		assert data["readOnly"] is True
		assert data["content"] == ANSWERED_PLAN

	def test_unanswered_questions_block_approval(self, manager, gateway):
		session_id = make_session(manager, content=UNANSWERED_PLAN)
		with pytest.raises(UnansweredQuestionsError):
			gateway.approve(session_id)
		assert manager.require_session(session_id).phase == Phase.USER_REVIEW
		assert not manager.get_paths(session_id).approved_plan.exists()

		m0 = gateway.read_content(session_id)["mtime"]
		gateway.save(session_id, ANSWERED_PLAN, m0)
		assert gateway.approve(session_id).phase == Phase.APPROVED

	def test_approve_mid_turn_is_invalid(self, manager, gateway):
		session_id = make_session(manager, phase=Phase.SYNTHESIZING)
		with pytest.raises(InvalidTransitionError) as exc_info:
			gateway.approve(session_id)
		assert not isinstance(exc_info.value, LockedError)


class TestArchive:
	@pytest.mark.parametrize("phase", [Phase.DRAFTING, Phase.USER_REVIEW, Phase.ERROR])
	def test_toggle_in_any_phase(self, manager, gateway, phase):
		session_id = make_session(manager, phase=phase)
		assert gateway.toggle_archive(session_id).archived is True
		assert gateway.toggle_archive(session_id).archived is False
		assert manager.require_session(session_id).phase == phase

	def test_toggle_after_approve(self, manager, gateway):
		session_id = make_session(manager)
		gateway.approve(session_id)
		assert gateway.toggle_archive(session_id, archived=True).archived is True
		assert gateway.toggle_archive(session_id, archived=True).archived is True
		assert manager.require_session(session_id).phase == Phase.APPROVED

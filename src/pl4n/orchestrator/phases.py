"""
Phase State Machine - legal phases and transitions of a session.

    initializing -> drafting                     (init)
    drafting -> peer_review -> synthesizing -> user_review   (orchestrator, as a unit)
    user_review -> drafting                      (continue, turn += 1)
    user_review -> approved                      (approve)
    any non-terminal phase -> error              (turn failure)
    error -> drafting                            (wait retries the same turn)

``continue`` and ``approve`` require ``user_review`` exactly. Once a
session is approved every mutating command reports Locked.
"""

from enum import Enum

from ..errors import InvalidTransitionError, LockedError
from ..session.models import Phase, SessionState


class Command(str, Enum):
	"""User-facing commands that move a session between phases."""
	INIT = "init"
	WAIT = "wait"
	CONTINUE = "continue"
	APPROVE = "approve"


TRANSITIONS: dict[Phase, frozenset[Phase]] = {
	Phase.INITIALIZING: frozenset({Phase.DRAFTING, Phase.ERROR}),
	Phase.DRAFTING: frozenset({Phase.PEER_REVIEW, Phase.ERROR}),
	Phase.PEER_REVIEW: frozenset({Phase.SYNTHESIZING, Phase.ERROR}),
	Phase.SYNTHESIZING: frozenset({Phase.USER_REVIEW, Phase.ERROR}),
	Phase.USER_REVIEW: frozenset({Phase.DRAFTING, Phase.APPROVED}),
	Phase.APPROVED: frozenset(),
	Phase.ERROR: frozenset({Phase.DRAFTING}),
}

# Phases from which the blocking entry point drives the orchestrator
RUNNABLE_PHASES = frozenset({
	Phase.INITIALIZING,
	Phase.DRAFTING,
	Phase.PEER_REVIEW,
	Phase.SYNTHESIZING,
	Phase.ERROR,
})

# Phases at which the blocking entry point returns immediately
RESTING_PHASES = frozenset({Phase.USER_REVIEW, Phase.APPROVED})

TERMINAL_PHASES = frozenset({Phase.APPROVED})

# Commands allowed per phase; anything else is an InvalidTransition
ALLOWED_COMMANDS: dict[Command, frozenset[Phase]] = {
	Command.INIT: frozenset({Phase.INITIALIZING}),
	Command.WAIT: frozenset(Phase),
	Command.CONTINUE: frozenset({Phase.USER_REVIEW}),
	Command.APPROVE: frozenset({Phase.USER_REVIEW}),
}


def can_transition(current: Phase, target: Phase) -> bool:
	return target in TRANSITIONS[current]


def check_transition(current: Phase, target: Phase) -> None:
	"""Raise InvalidTransitionError unless ``current -> target`` is legal."""
	if not can_transition(current, target):
		raise InvalidTransitionError(
			f"Cannot move from {current.value} to {target.value}",
			phase=current.value,
		)


def guard_command(state: SessionState, command: Command) -> None:
	"""
	Check ``command`` against the session's phase before any mutation.

	Raises:
		LockedError: the session is approved and the command would mutate it
		InvalidTransitionError: the phase does not allow the command
	"""
	if state.phase in TERMINAL_PHASES and command != Command.WAIT:
		raise LockedError(
			f"Session {state.session_id} is approved and locked",
			phase=state.phase.value,
			turn=state.turn,
		)
	if state.phase not in ALLOWED_COMMANDS[command]:
		raise InvalidTransitionError(
			f"Cannot {command.value} from phase {state.phase.value}",
			phase=state.phase.value,
			turn=state.turn,
			hint=_hint_for(command),
		)


def _hint_for(command: Command) -> str:
	if command in (Command.CONTINUE, Command.APPROVE):
		return f"Wait for user_review phase before calling {command.value}"
	return "call wait to block until turn complete"


def advance(state: SessionState, target: Phase) -> None:
	"""Move ``state`` to ``target`` in memory after checking the transition."""
	check_transition(state.phase, target)
	state.phase = target


def restart_turn(state: SessionState) -> None:
	"""
	Put a runnable session back at the start of its current turn.

	A run interrupted mid-chain, or one that ended in ``error``, re-attempts
	the same turn number from ``drafting``.
	"""
	if state.phase not in RUNNABLE_PHASES:
		raise InvalidTransitionError(
			f"Cannot run a turn from phase {state.phase.value}",
			phase=state.phase.value,
			turn=state.turn,
		)
	state.phase = Phase.DRAFTING

"""Phase state machine and turn orchestration."""

from .batch import BatchItem, BatchProcessor, BatchResult, BatchStatus, BatchSummary
from .phases import Command, advance, guard_command, restart_turn
from .turn import TurnOrchestrator

__all__ = [
	"BatchItem",
	"BatchProcessor",
	"BatchResult",
	"BatchStatus",
	"BatchSummary",
	"Command",
	"TurnOrchestrator",
	"advance",
	"guard_command",
	"restart_turn",
]

"""Session module - durable per-session state and file layout."""

from .models import AgentStatus, Phase, SessionPaths, SessionState
from .store import SessionManager, has_unanswered_questions, mtime_token, write_text_atomic

__all__ = [
	"AgentStatus",
	"Phase",
	"SessionPaths",
	"SessionState",
	"SessionManager",
	"has_unanswered_questions",
	"mtime_token",
	"write_text_atomic",
]

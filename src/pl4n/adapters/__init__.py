"""Agent adapters: one implementation per external planning tool."""

from ..config import AgentConfig, AgentType
from ..errors import ValidationError
from .base import AgentAdapter, AgentCallContext, CLIAgentAdapter, extract_error_summary
from .claude import ClaudeAdapter
from .codex import CodexAdapter

ADAPTERS: dict[AgentType, type[CLIAgentAdapter]] = {
	AgentType.CLAUDE: ClaudeAdapter,
	AgentType.CODEX: CodexAdapter,
}


def create_adapter(config: AgentConfig) -> AgentAdapter:
	"""Build the adapter for one configured agent identity."""
	adapter_cls = ADAPTERS.get(config.type)
	if adapter_cls is None:
		raise ValidationError(f"Unknown agent type: {config.type}")
	return adapter_cls(config)


__all__ = [
	"AgentAdapter",
	"AgentCallContext",
	"CLIAgentAdapter",
	"ClaudeAdapter",
	"CodexAdapter",
	"create_adapter",
	"extract_error_summary",
]

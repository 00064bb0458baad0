"""pl4n - multi-agent planning sessions with a human in the loop."""

__version__ = "0.1.0"

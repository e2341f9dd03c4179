"""agentorch - shared coordination engine for cooperating agent processes."""

__version__ = "0.1.0"

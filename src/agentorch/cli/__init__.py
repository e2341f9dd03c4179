"""Command line interface for agentorch."""

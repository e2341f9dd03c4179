"""Infrastructure layer for agentorch."""

from agentorch.infrastructure.config import Config, ConfigManager
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.logger import get_logger, setup_logging

__all__ = [
    "Config",
    "ConfigManager",
    "Database",
    "get_logger",
    "setup_logging",
]

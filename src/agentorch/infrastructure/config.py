"""Configuration management with hierarchical loading."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from agentorch.domain.models import AgentRole
from agentorch.infrastructure.logger import get_logger

logger = get_logger(__name__)

CONFIG_DIR_NAME = ".agentorch"
DEFAULT_DB_NAME = "orchestrator.db"


class AgentDefaults(BaseModel):
    """Identity used when a caller registers without naming itself."""

    name: str | None = None
    role: AgentRole = AgentRole.SUB
    capabilities: list[str] = Field(default_factory=lambda: ["code"])

    @field_validator("capabilities", mode="before")
    @classmethod
    def split_capabilities(cls, v: Any) -> Any:
        """Accept a comma separated string as well as a list."""
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v


class CoordinationConfig(BaseModel):
    """Timeouts and limits for the lazy sweeps and listings."""

    stale_agent_seconds: int = Field(default=300, ge=1)
    default_lock_timeout_seconds: int = Field(default=300, ge=1)
    event_list_limit: int = Field(default=100, ge=1)


class Config(BaseModel):
    """Main configuration model."""

    version: str = "0.1.0"
    log_level: str = "INFO"
    database_path: str | None = None
    busy_timeout_ms: int = Field(default=5000, ge=0)
    context_export: bool = False  # consumed by the context exporter, not by this engine
    agent: AgentDefaults = Field(default_factory=AgentDefaults)
    coordination: CoordinationConfig = Field(default_factory=CoordinationConfig)


class ConfigManager:
    """Manage configuration loading from multiple sources with hierarchy."""

    def __init__(self, project_root: Path | None = None) -> None:
        """Initialize config manager.

        Args:
            project_root: Root directory of the project (default: current directory)
        """
        self.project_root = project_root or Path.cwd()
        self._config: Config | None = None

    def load_config(self) -> Config:
        """Load configuration from all sources in hierarchy order.

        Configuration hierarchy (highest priority last):
        1. System defaults (embedded in Config model)
        2. Project defaults (.agentorch/config.yaml)
        3. User overrides (~/.agentorch/config.yaml)
        4. Project-local overrides (.agentorch/local.yaml)
        5. Environment variables (AGENTORCH_* prefix)

        Returns:
            Merged configuration
        """
        if self._config is not None:
            return self._config

        config_dict: dict[str, Any] = {}

        for path in (
            self.project_root / CONFIG_DIR_NAME / "config.yaml",
            Path.home() / CONFIG_DIR_NAME / "config.yaml",
            self.project_root / CONFIG_DIR_NAME / "local.yaml",
        ):
            if path.exists():
                config_dict = self._merge_dicts(config_dict, self._load_yaml(path))
                logger.debug("config_file_loaded", path=str(path))

        config_dict = self._apply_env_vars(config_dict)

        self._config = Config(**config_dict)
        return self._config

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        """Load YAML configuration file."""
        with open(path) as f:
            return yaml.safe_load(f) or {}

    def _merge_dicts(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_dicts(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_vars(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variables with AGENTORCH_ prefix."""
        env_mappings = {
            "AGENTORCH_LOG_LEVEL": ["log_level"],
            "AGENTORCH_DB_PATH": ["database_path"],
            "AGENTORCH_BUSY_TIMEOUT_MS": ["busy_timeout_ms"],
            "AGENTORCH_CONTEXT_EXPORT": ["context_export"],
            "AGENTORCH_AGENT_NAME": ["agent", "name"],
            "AGENTORCH_AGENT_ROLE": ["agent", "role"],
            "AGENTORCH_CAPABILITIES": ["agent", "capabilities"],
            "AGENTORCH_STALE_AGENT_SECONDS": ["coordination", "stale_agent_seconds"],
            "AGENTORCH_LOCK_TIMEOUT_SECONDS": ["coordination", "default_lock_timeout_seconds"],
            "AGENTORCH_EVENT_LIST_LIMIT": ["coordination", "event_list_limit"],
        }

        for env_var, path in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                current = config_dict
                for key in path[:-1]:
                    if key not in current:
                        current[key] = {}
                    current = current[key]
                # pydantic coerces "5000" -> int and "true"/"1" -> bool
                current[path[-1]] = value

        return config_dict

    def get_database_path(self) -> Path:
        """Get path to the SQLite coordination store.

        Relative ``database_path`` values resolve against the project root.
        """
        config = self.load_config()
        if config.database_path:
            if config.database_path == ":memory:":
                return Path(":memory:")
            path = Path(config.database_path).expanduser()
            if not path.is_absolute():
                path = self.project_root / path
            return path
        return self.project_root / CONFIG_DIR_NAME / DEFAULT_DB_NAME

    def get_log_dir(self) -> Path:
        """Get path to log directory."""
        log_dir = self.project_root / CONFIG_DIR_NAME / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir

"""Unit tests for configuration management."""

from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
import yaml
from agentorch.domain.models import AgentRole
from agentorch.infrastructure.config import AgentDefaults, Config, ConfigManager

ENV_VARS = (
    "AGENTORCH_LOG_LEVEL",
    "AGENTORCH_DB_PATH",
    "AGENTORCH_BUSY_TIMEOUT_MS",
    "AGENTORCH_CONTEXT_EXPORT",
    "AGENTORCH_AGENT_NAME",
    "AGENTORCH_AGENT_ROLE",
    "AGENTORCH_CAPABILITIES",
    "AGENTORCH_STALE_AGENT_SECONDS",
    "AGENTORCH_LOCK_TIMEOUT_SECONDS",
    "AGENTORCH_EVENT_LIST_LIMIT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate tests from the caller's environment and home directory."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


class TestConfig:
    """Tests for Config model."""

    def test_default_config(self) -> None:
        """Test default configuration values."""
        config = Config()

        assert config.log_level == "INFO"
        assert config.database_path is None
        assert config.busy_timeout_ms == 5000
        assert config.context_export is False
        assert config.agent.role == AgentRole.SUB
        assert config.agent.capabilities == ["code"]
        assert config.coordination.stale_agent_seconds == 300
        assert config.coordination.default_lock_timeout_seconds == 300

    def test_capabilities_accept_comma_string(self) -> None:
        """Test capabilities parse from a comma separated string."""
        defaults = AgentDefaults(capabilities="code, review,,test")
        assert defaults.capabilities == ["code", "review", "test"]


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_default_database_path(self) -> None:
        """Test the store defaults to .agentorch/orchestrator.db."""
        with TemporaryDirectory() as tmpdir:
            manager = ConfigManager(project_root=Path(tmpdir))
            assert manager.get_database_path() == Path(tmpdir) / ".agentorch" / "orchestrator.db"

    def test_project_yaml_loaded(self) -> None:
        """Test project config.yaml is loaded."""
        with TemporaryDirectory() as tmpdir:
            config_dir = Path(tmpdir) / ".agentorch"
            config_dir.mkdir()
            (config_dir / "config.yaml").write_text(
                yaml.dump({"log_level": "DEBUG", "coordination": {"stale_agent_seconds": 60}})
            )

            config = ConfigManager(project_root=Path(tmpdir)).load_config()

            assert config.log_level == "DEBUG"
            assert config.coordination.stale_agent_seconds == 60
            assert config.coordination.default_lock_timeout_seconds == 300

    def test_local_yaml_overrides_project_yaml(self) -> None:
        """Test local.yaml overrides config.yaml."""
        with TemporaryDirectory() as tmpdir:
            config_dir = Path(tmpdir) / ".agentorch"
            config_dir.mkdir()
            (config_dir / "config.yaml").write_text(yaml.dump({"log_level": "DEBUG"}))
            (config_dir / "local.yaml").write_text(yaml.dump({"log_level": "WARNING"}))

            config = ConfigManager(project_root=Path(tmpdir)).load_config()

            assert config.log_level == "WARNING"

    def test_env_vars_override_files(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment variables override YAML files."""
        with TemporaryDirectory() as tmpdir:
            config_dir = Path(tmpdir) / ".agentorch"
            config_dir.mkdir()
            (config_dir / "config.yaml").write_text(yaml.dump({"log_level": "DEBUG"}))

            monkeypatch.setenv("AGENTORCH_LOG_LEVEL", "ERROR")
            monkeypatch.setenv("AGENTORCH_AGENT_NAME", "alice")
            monkeypatch.setenv("AGENTORCH_AGENT_ROLE", "main")
            monkeypatch.setenv("AGENTORCH_CAPABILITIES", "code,review")
            monkeypatch.setenv("AGENTORCH_BUSY_TIMEOUT_MS", "250")
            monkeypatch.setenv("AGENTORCH_CONTEXT_EXPORT", "true")
            monkeypatch.setenv("AGENTORCH_LOCK_TIMEOUT_SECONDS", "60")
            monkeypatch.setenv("AGENTORCH_EVENT_LIST_LIMIT", "25")

            config = ConfigManager(project_root=Path(tmpdir)).load_config()

            assert config.log_level == "ERROR"
            assert config.agent.name == "alice"
            assert config.agent.role == AgentRole.MAIN
            assert config.agent.capabilities == ["code", "review"]
            assert config.busy_timeout_ms == 250
            assert config.context_export is True
            assert config.coordination.default_lock_timeout_seconds == 60
            assert config.coordination.event_list_limit == 25

    def test_relative_db_path_resolves_against_project_root(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a relative database path resolves against the project root."""
        with TemporaryDirectory() as tmpdir:
            monkeypatch.setenv("AGENTORCH_DB_PATH", "state/coord.db")
            manager = ConfigManager(project_root=Path(tmpdir))
            assert manager.get_database_path() == Path(tmpdir) / "state" / "coord.db"

    def test_memory_db_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test ":memory:" is passed through unchanged."""
        monkeypatch.setenv("AGENTORCH_DB_PATH", ":memory:")
        assert ConfigManager(project_root=Path("/tmp")).get_database_path() == Path(":memory:")

    def test_merge_dicts_is_recursive(self) -> None:
        """Test nested config dicts merge recursively."""
        manager = ConfigManager(project_root=Path("/tmp"))
        merged = manager._merge_dicts(
            {"agent": {"name": "a", "role": "sub"}, "log_level": "INFO"},
            {"agent": {"name": "b"}},
        )
        assert merged == {"agent": {"name": "b", "role": "sub"}, "log_level": "INFO"}

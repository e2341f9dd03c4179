"""Application layer: engine wiring and the per-agent session surface."""

from agentorch.application.coordinator import Coordinator
from agentorch.application.session import (
    AgentSession,
    BootstrapContext,
    CoordinationStatus,
    TurnCheck,
)

__all__ = [
    "AgentSession",
    "BootstrapContext",
    "CoordinationStatus",
    "Coordinator",
    "TurnCheck",
]

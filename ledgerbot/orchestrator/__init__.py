from ledgerbot.orchestrator.core import (
    IterationState,
    Orchestrator,
    StreamCallback,
    TurnResult,
    TurnState,
)

__all__ = [
    "IterationState",
    "Orchestrator",
    "StreamCallback",
    "TurnResult",
    "TurnState",
]

"""Session orchestration for dialogue_recall."""

from dialogue_recall.session.events import (
    SessionEvent,
    SessionEventChannel,
    SessionEventType,
    Subscription,
)
from dialogue_recall.session.orchestrator import (
    ChunkCallback,
    SessionOrchestrator,
    SessionSnapshot,
    TangentExit,
    TurnResult,
)
from dialogue_recall.session.state import SessionState, SessionTransition

__all__ = [
    "ChunkCallback",
    "SessionEvent",
    "SessionEventChannel",
    "SessionEventType",
    "SessionOrchestrator",
    "SessionSnapshot",
    "SessionState",
    "SessionTransition",
    "Subscription",
    "TangentExit",
    "TurnResult",
]

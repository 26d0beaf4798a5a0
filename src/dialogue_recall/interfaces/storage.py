"""Storage interfaces for dialogue_recall.

This module defines the Protocols for persistent storage operations.
Session storage is required by the orchestrator; metrics storage
(outcomes, tangent events, summaries) is optional.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import ClassVar, Protocol, runtime_checkable

from dialogue_recall.models.metrics import RecallOutcomeDTO, SessionMetricsSummary
from dialogue_recall.models.recall import RecallPointDTO, RecallSetDTO
from dialogue_recall.models.session import SessionDTO, SessionMessageDTO
from dialogue_recall.models.tangent import TangentEventDTO

__all__ = [
    "MetricsStorageInterface",
    "SessionStorageInterface",
]


@runtime_checkable
class SessionStorageInterface(Protocol):
    """Contract for recall point, session and message persistence.

    Implementations are assumed to make single-document writes atomic;
    no cross-document transaction spans a turn.
    """

    config_class: ClassVar[type | None] = None

    # Recall set and point operations
    async def save_recall_set(self, recall_set: RecallSetDTO) -> str:
        """Save or update a recall set.

        Args:
            recall_set: Set to save

        Returns:
            Set ID
        """
        ...

    async def get_recall_set(self, recall_set_id: str) -> RecallSetDTO | None:
        """Get a recall set by ID."""
        ...

    async def save_recall_point(self, point: RecallPointDTO) -> str:
        """Save or update a recall point, including memory state and history.

        Args:
            point: Point to save

        Returns:
            Point ID
        """
        ...

    async def get_recall_point(self, point_id: str) -> RecallPointDTO | None:
        """Get a recall point by ID."""
        ...

    async def find_due_points(
        self,
        recall_set_id: str,
        as_of: datetime,
    ) -> list[RecallPointDTO]:
        """Find points of a set that are due at a given time.

        Args:
            recall_set_id: Set to search
            as_of: Points due at or before this time are returned

        Returns:
            Due points ordered by due date, earliest first
        """
        ...

    async def update_memory_state(self, point: RecallPointDTO) -> None:
        """Persist a point's advanced memory state and recall history.

        Args:
            point: Point carrying the new state and the appended attempt
        """
        ...

    # Session operations
    async def create_session(self, session: SessionDTO) -> str:
        """Create a session.

        Returns:
            Session ID
        """
        ...

    async def get_session(self, session_id: str) -> SessionDTO | None:
        """Get a session by ID."""
        ...

    async def find_in_progress_session(self, recall_set_id: str) -> SessionDTO | None:
        """Find the in-progress session of a set, if one exists."""
        ...

    async def find_paused_session(self, recall_set_id: str) -> SessionDTO | None:
        """Find the most recently started paused session of a set, if one exists."""
        ...

    async def update_session_progress(
        self,
        session_id: str,
        recalled_point_ids: Sequence[str],
        active_tangent_id: str | None,
    ) -> None:
        """Persist the recalled set and the active tangent reference."""
        ...

    async def complete_session(self, session_id: str, ended_at: datetime) -> None:
        """Mark a session completed."""
        ...

    async def abandon_session(self, session_id: str, ended_at: datetime) -> None:
        """Mark a session abandoned."""
        ...

    async def pause_session(self, session_id: str) -> None:
        """Mark a session paused."""
        ...

    async def resume_session(self, session_id: str) -> None:
        """Mark a paused session in progress again."""
        ...

    # Message operations
    async def create_message(self, message: SessionMessageDTO) -> str:
        """Append a message to a session.

        Returns:
            Message ID
        """
        ...

    async def get_session_messages(self, session_id: str) -> list[SessionMessageDTO]:
        """Get all messages of a session in timestamp order."""
        ...


@runtime_checkable
class MetricsStorageInterface(Protocol):
    """Contract for outcome, tangent and metrics persistence."""

    config_class: ClassVar[type | None] = None

    async def save_recall_outcome(self, outcome: RecallOutcomeDTO) -> str:
        """Save a resolved recall outcome.

        Returns:
            Outcome ID
        """
        ...

    async def get_recall_outcomes(self, session_id: str) -> list[RecallOutcomeDTO]:
        """Get outcomes recorded for a session, oldest first."""
        ...

    async def save_tangent_event(self, event: TangentEventDTO) -> str:
        """Save or update a tangent event.

        Returns:
            Tangent event ID
        """
        ...

    async def get_tangent_events(self, session_id: str) -> list[TangentEventDTO]:
        """Get tangent events of a session, oldest first."""
        ...

    async def save_session_metrics(self, summary: SessionMetricsSummary) -> str:
        """Save a finalized session summary.

        Returns:
            Session ID the summary belongs to
        """
        ...

    async def get_session_metrics(self, session_id: str) -> SessionMetricsSummary | None:
        """Get the finalized summary of a session."""
        ...

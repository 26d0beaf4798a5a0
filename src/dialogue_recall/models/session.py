"""Session models for dialogue_recall."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

__all__ = [
    "MessageRole",
    "SessionDTO",
    "SessionMessageDTO",
    "SessionStatus",
]


class SessionStatus(StrEnum):
    """Lifecycle status of a recall session.

    Transitions are one-way except in_progress -> paused -> in_progress.
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PAUSED = "paused"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


class MessageRole(StrEnum):
    """Author of a session message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SessionDTO(BaseModel, frozen=True):
    """A study session over a fixed list of target points.

    Attributes:
        id: Unique session identifier
        recall_set_id: Set being studied
        target_point_ids: Points to recall, fixed at creation
        status: Lifecycle status
        started_at: Creation time (UTC)
        ended_at: Completion or abandonment time (UTC)
        recalled_point_ids: Points recalled so far, in the order they were recalled
        active_tangent_id: Innermost open tangent event, if any
        schema_version: Schema version for forward compatibility
    """

    id: str = Field(description="Session ID")
    recall_set_id: str = Field(description="Recall set ID")
    target_point_ids: tuple[str, ...] = Field(description="Target point IDs")
    status: SessionStatus = Field(default=SessionStatus.IN_PROGRESS)
    started_at: datetime
    ended_at: datetime | None = None
    recalled_point_ids: tuple[str, ...] = Field(default=())
    active_tangent_id: str | None = None
    schema_version: int = Field(default=1)

    @property
    def is_fully_recalled(self) -> bool:
        return set(self.target_point_ids) <= set(self.recalled_point_ids)


class SessionMessageDTO(BaseModel, frozen=True):
    """An immutable message exchanged during a session.

    Attributes:
        id: Unique message identifier
        session_id: Owning session
        role: Author of the message
        content: Message text
        timestamp: Creation time (UTC)
        token_count: Tokens generated for assistant messages, if known
        schema_version: Schema version for forward compatibility
    """

    id: str = Field(description="Message ID")
    session_id: str = Field(description="Session ID")
    role: MessageRole
    content: str
    timestamp: datetime
    token_count: int | None = Field(default=None, ge=0)
    schema_version: int = Field(default=1)

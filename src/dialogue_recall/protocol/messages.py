"""Real-time session protocol messages.

Client and server messages are JSON objects with a ``type`` field and
camelCase keys. Client messages are parsed through a registry keyed by
``type``; parse failures raise ProtocolError carrying the error code to
report back.
"""

import json
from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from dialogue_recall.errors import DialogueRecallError
from dialogue_recall.models.metrics import SessionMetricsSummary

__all__ = [
    "CLIENT_MESSAGE_TYPES",
    "AssistantChunk",
    "AssistantComplete",
    "ClientMessage",
    "DeclineRabbithole",
    "DismissOverlay",
    "EnterRabbithole",
    "ErrorCode",
    "ErrorMessage",
    "ExitRabbithole",
    "LeaveSession",
    "Ping",
    "PointRecalled",
    "Pong",
    "ProtocolError",
    "RabbitholeDetected",
    "RabbitholeEntered",
    "RabbitholeExited",
    "ServerMessage",
    "SessionComplete",
    "SessionCompleteOverlay",
    "SessionPaused",
    "SessionStarted",
    "UserMessage",
    "parse_client_message",
]


class ErrorCode(StrEnum):
    """Error codes reported to the client."""

    INVALID_MESSAGE_FORMAT = "INVALID_MESSAGE_FORMAT"
    UNKNOWN_MESSAGE_TYPE = "UNKNOWN_MESSAGE_TYPE"
    MISSING_CONTENT = "MISSING_CONTENT"
    SESSION_NOT_ACTIVE = "SESSION_NOT_ACTIVE"
    SESSION_ENGINE_ERROR = "SESSION_ENGINE_ERROR"
    LLM_ERROR = "LLM_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def description(self) -> str:
        return _ERROR_DESCRIPTIONS[self]


_ERROR_DESCRIPTIONS = {
    ErrorCode.INVALID_MESSAGE_FORMAT: "The message could not be parsed as valid JSON",
    ErrorCode.UNKNOWN_MESSAGE_TYPE: "The message type is not recognized",
    ErrorCode.MISSING_CONTENT: "The user_message is missing the content field",
    ErrorCode.SESSION_NOT_ACTIVE: "The session is not in an active state",
    ErrorCode.SESSION_ENGINE_ERROR: "An error occurred in the session engine",
    ErrorCode.LLM_ERROR: "An error occurred while communicating with the LLM API",
    ErrorCode.INTERNAL_ERROR: "An unexpected internal server error occurred",
}


class ProtocolError(DialogueRecallError):
    """A client message that cannot be handled."""

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message or code.description)
        self.code = code
        self.recoverable = recoverable


class _ProtocolMessage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


# Client -> server


class UserMessage(_ProtocolMessage):
    type: Literal["user_message"] = "user_message"
    content: str


class LeaveSession(_ProtocolMessage):
    type: Literal["leave_session"] = "leave_session"


class EnterRabbithole(_ProtocolMessage):
    type: Literal["enter_rabbithole"] = "enter_rabbithole"
    event_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("eventId", "rabbitholeEventId", "event_id"),
    )
    topic: str | None = None


class ExitRabbithole(_ProtocolMessage):
    type: Literal["exit_rabbithole"] = "exit_rabbithole"


class DeclineRabbithole(_ProtocolMessage):
    type: Literal["decline_rabbithole"] = "decline_rabbithole"


class DismissOverlay(_ProtocolMessage):
    type: Literal["dismiss_overlay"] = "dismiss_overlay"


class Ping(_ProtocolMessage):
    type: Literal["ping"] = "ping"


type ClientMessage = (
    UserMessage | LeaveSession | EnterRabbithole | ExitRabbithole | DeclineRabbithole
    | DismissOverlay | Ping
)

_CLIENT_MESSAGES: dict[str, type[_ProtocolMessage]] = {
    "user_message": UserMessage,
    "leave_session": LeaveSession,
    "enter_rabbithole": EnterRabbithole,
    "exit_rabbithole": ExitRabbithole,
    "decline_rabbithole": DeclineRabbithole,
    "dismiss_overlay": DismissOverlay,
    "ping": Ping,
}

CLIENT_MESSAGE_TYPES = frozenset(_CLIENT_MESSAGES)


def parse_client_message(raw: str | bytes) -> ClientMessage:
    """Parse and validate a raw client message.

    Args:
        raw: JSON text received from the client

    Returns:
        The typed client message

    Raises:
        ProtocolError: With INVALID_MESSAGE_FORMAT, UNKNOWN_MESSAGE_TYPE or MISSING_CONTENT
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except ValueError:
        raise ProtocolError(ErrorCode.INVALID_MESSAGE_FORMAT) from None

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ProtocolError(
            ErrorCode.INVALID_MESSAGE_FORMAT, "Message must be an object with a type"
        )

    message_class = _CLIENT_MESSAGES.get(data["type"])
    if message_class is None:
        raise ProtocolError(
            ErrorCode.UNKNOWN_MESSAGE_TYPE, f"Unknown message type: {data['type']}"
        )

    if message_class is UserMessage:
        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ProtocolError(ErrorCode.MISSING_CONTENT)

    try:
        return message_class.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        raise ProtocolError(ErrorCode.INVALID_MESSAGE_FORMAT, str(e)) from None


# Server -> client


class SessionStarted(_ProtocolMessage):
    type: Literal["session_started"] = "session_started"
    session_id: str
    opening_message: str
    total_points: int
    recalled_count: int


class AssistantChunk(_ProtocolMessage):
    type: Literal["assistant_chunk"] = "assistant_chunk"
    content: str
    chunk_index: int


class AssistantComplete(_ProtocolMessage):
    type: Literal["assistant_complete"] = "assistant_complete"
    full_content: str
    total_chunks: int


class PointRecalled(_ProtocolMessage):
    type: Literal["point_recalled"] = "point_recalled"
    point_id: str
    recalled_count: int
    total_points: int


class SessionCompleteOverlay(_ProtocolMessage):
    type: Literal["session_complete_overlay"] = "session_complete_overlay"
    session_id: str
    recalled_count: int
    total_points: int
    message: str = "You've recalled every point in this session."
    can_continue: bool = True


class SessionPaused(_ProtocolMessage):
    type: Literal["session_paused"] = "session_paused"
    session_id: str
    recalled_count: int
    total_points: int


class SessionComplete(_ProtocolMessage):
    type: Literal["session_complete"] = "session_complete"
    summary: SessionMetricsSummary


class RabbitholeDetected(_ProtocolMessage):
    type: Literal["rabbithole_detected"] = "rabbithole_detected"
    topic: str
    event_id: str


class RabbitholeEntered(_ProtocolMessage):
    type: Literal["rabbithole_entered"] = "rabbithole_entered"
    topic: str


class RabbitholeExited(_ProtocolMessage):
    type: Literal["rabbithole_exited"] = "rabbithole_exited"
    label: str
    points_recalled_during: int
    completion_pending: bool


class ErrorMessage(_ProtocolMessage):
    type: Literal["error"] = "error"
    code: ErrorCode
    message: str
    recoverable: bool = True

    @classmethod
    def from_error(cls, error: ProtocolError) -> "ErrorMessage":
        return cls(code=error.code, message=str(error), recoverable=error.recoverable)


class Pong(_ProtocolMessage):
    type: Literal["pong"] = "pong"
    timestamp: int


type ServerMessage = (
    SessionStarted | AssistantChunk | AssistantComplete | PointRecalled | SessionCompleteOverlay
    | SessionPaused | SessionComplete | RabbitholeDetected | RabbitholeEntered | RabbitholeExited
    | ErrorMessage | Pong
)

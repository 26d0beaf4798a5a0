"""Exception taxonomy for dialogue_recall.

Model-client and persistence failures propagate out of a turn unchanged;
the session keeps its last committed state and the turn can be retried.
"""

from enum import StrEnum

__all__ = [
    "DialogueRecallError",
    "LLMError",
    "LLMErrorType",
    "NoActiveSessionError",
    "NoPointsDueError",
    "SessionNotActiveError",
    "SessionNotCompleteError",
    "UnknownTangentError",
]


class DialogueRecallError(Exception):
    """Base class for all dialogue_recall errors."""


class LLMErrorType(StrEnum):
    """Classification of language-model client failures."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    INVALID_REQUEST = "invalid_request"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"
    UNKNOWN = "unknown"


_RETRYABLE = frozenset(
    {
        LLMErrorType.RATE_LIMIT,
        LLMErrorType.SERVER_ERROR,
        LLMErrorType.NETWORK,
        LLMErrorType.TIMEOUT,
    }
)


class LLMError(DialogueRecallError):
    """Typed failure raised by LLM providers.

    Attributes:
        error_type: Failure classification
        retryable: Whether repeating the same call may succeed
        status_code: HTTP status reported by the provider, if any
    """

    def __init__(
        self,
        error_type: LLMErrorType,
        message: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.error_type in _RETRYABLE

    def __str__(self) -> str:
        return f"[{self.error_type}] {super().__str__()}"


class NoPointsDueError(DialogueRecallError):
    """Raised when a session is requested for a set with nothing due."""

    def __init__(self, recall_set_id: str) -> None:
        super().__init__(f"No recall points are due for set {recall_set_id}")
        self.recall_set_id = recall_set_id


class NoActiveSessionError(DialogueRecallError):
    """Raised when an operation needs a loaded session and none is."""


class SessionNotActiveError(DialogueRecallError):
    """Raised when a turn is attempted on a session that is not in progress."""

    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(f"Session {session_id} is {status}, not in_progress")
        self.session_id = session_id
        self.status = status


class SessionNotCompleteError(DialogueRecallError):
    """Raised when finalizing a session before every target point is recalled."""


class UnknownTangentError(DialogueRecallError):
    """Raised when a tangent operation has nothing to act on."""

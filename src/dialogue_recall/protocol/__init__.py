"""Real-time session protocol for dialogue_recall."""

from dialogue_recall.protocol.handler import SessionChannelHandler
from dialogue_recall.protocol.messages import (
    CLIENT_MESSAGE_TYPES,
    ErrorCode,
    ProtocolError,
    parse_client_message,
)

__all__ = [
    "CLIENT_MESSAGE_TYPES",
    "ErrorCode",
    "ProtocolError",
    "SessionChannelHandler",
    "parse_client_message",
]

"""Real-time session channel handler.

Bridges a bidirectional message transport (a websocket, a console, a test
harness) to a SessionOrchestrator. The handler does not own the
transport: it receives raw client messages through ``handle_raw`` and
emits server messages through the ``send`` coroutine it was given.
"""

from collections.abc import Awaitable, Callable
from typing import Any

from dialogue_recall.config import SessionSettings
from dialogue_recall.errors import (
    DialogueRecallError,
    LLMError,
    NoActiveSessionError,
    NoPointsDueError,
    SessionNotActiveError,
)
from dialogue_recall.logging import get_logger
from dialogue_recall.models.recall import RecallSetDTO
from dialogue_recall.protocol.messages import (
    AssistantChunk,
    AssistantComplete,
    ClientMessage,
    DeclineRabbithole,
    DismissOverlay,
    EnterRabbithole,
    ErrorCode,
    ErrorMessage,
    ExitRabbithole,
    LeaveSession,
    Ping,
    PointRecalled,
    Pong,
    ProtocolError,
    RabbitholeDetected,
    RabbitholeEntered,
    RabbitholeExited,
    ServerMessage,
    SessionComplete,
    SessionCompleteOverlay,
    SessionPaused,
    SessionStarted,
    UserMessage,
    parse_client_message,
)
from dialogue_recall.session.orchestrator import SessionOrchestrator, TurnResult
from dialogue_recall.utils.ids import utc_now

__all__ = [
    "SessionChannelHandler",
]

logger = get_logger(__name__)

type Send = Callable[[dict[str, Any]], Awaitable[None]]


class _Rechunker:
    """Re-slices streamed text into fixed-size assistant_chunk messages."""

    def __init__(self, send: Callable[[ServerMessage], Awaitable[None]], size: int) -> None:
        self._send = send
        self._size = size
        self._buffer = ""
        self._parts: list[str] = []
        self.count = 0

    async def feed(self, text: str) -> None:
        self._parts.append(text)
        self._buffer += text
        while len(self._buffer) >= self._size:
            await self._emit(self._buffer[: self._size])
            self._buffer = self._buffer[self._size :]

    async def flush(self) -> None:
        if self._buffer:
            await self._emit(self._buffer)
            self._buffer = ""

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def _emit(self, content: str) -> None:
        await self._send(AssistantChunk(content=content, chunk_index=self.count))
        self.count += 1


class SessionChannelHandler:
    """Routes protocol messages for one connection to an orchestrator.

    Example:
        handler = SessionChannelHandler(orchestrator, websocket.send_json)
        await handler.open(recall_set)
        async for raw in websocket.iter_text():
            await handler.handle_raw(raw)
            if handler.closed:
                break
    """

    def __init__(
        self,
        orchestrator: SessionOrchestrator,
        send: Send,
        settings: SessionSettings | None = None,
    ) -> None:
        """Initialize handler.

        Args:
            orchestrator: Orchestrator driving the session
            send: Coroutine delivering one JSON-ready server message
            settings: Chunk size and error limit (defaults to the orchestrator's)
        """
        self._orchestrator = orchestrator
        self._send = send
        self._settings = settings or orchestrator.settings
        self._consecutive_errors = 0
        self._closed = False
        self._announced: set[str] = set()
        self._overlay_sent = False

    @property
    def closed(self) -> bool:
        """True once too many consecutive errors were reported."""
        return self._closed

    async def open(self, recall_set: RecallSetDTO | str) -> bool:
        """Start or resume the session and send ``session_started``.

        Returns:
            False if the session could not be opened (an error was sent)
        """
        try:
            state = await self._orchestrator.start_session(recall_set)
            opening = await self._orchestrator.get_opening_message()
        except NoPointsDueError as e:
            await self._error(ErrorCode.SESSION_NOT_ACTIVE, str(e), recoverable=False)
            return False
        except LLMError as e:
            await self._error(ErrorCode.LLM_ERROR, str(e), recoverable=e.retryable)
            return False

        self._announced = set(state.recalled_point_ids)
        self._overlay_sent = False
        snapshot = self._orchestrator.get_session_state()
        assert snapshot is not None
        await self._emit(
            SessionStarted(
                session_id=snapshot.session_id,
                opening_message=opening,
                total_points=snapshot.total_points,
                recalled_count=snapshot.recalled_count,
            )
        )
        if snapshot.completion_pending:
            await self._send_overlay()
        return True

    async def handle_raw(self, raw: str | bytes) -> None:
        """Parse and handle one raw client message.

        Parse failures and orchestrator failures are reported as ``error``
        messages. After ``max_consecutive_errors`` failures in a row the
        handler marks itself closed and ignores further input.
        """
        if self._closed:
            return
        try:
            message = parse_client_message(raw)
        except ProtocolError as e:
            await self._fail(e.code, str(e), e.recoverable)
            return

        try:
            await self._dispatch(message)
        except ProtocolError as e:
            await self._fail(e.code, str(e), e.recoverable)
        except LLMError as e:
            await self._fail(ErrorCode.LLM_ERROR, str(e), e.retryable)
        except (NoActiveSessionError, SessionNotActiveError) as e:
            await self._fail(ErrorCode.SESSION_NOT_ACTIVE, str(e), True)
        except DialogueRecallError as e:
            await self._fail(ErrorCode.SESSION_ENGINE_ERROR, str(e), True)
        except Exception as e:
            logger.exception("channel_message_failed", message_type=message.type)
            await self._fail(ErrorCode.INTERNAL_ERROR, str(e) or type(e).__name__, False)
        else:
            self._consecutive_errors = 0

    async def _dispatch(self, message: ClientMessage) -> None:
        if isinstance(message, UserMessage):
            await self._handle_user_message(message.content)
        elif isinstance(message, LeaveSession):
            await self._handle_leave()
        elif isinstance(message, EnterRabbithole):
            event = await self._orchestrator.enter_tangent(message.event_id, message.topic)
            await self._emit(RabbitholeEntered(topic=event.topic))
        elif isinstance(message, ExitRabbithole):
            exit_ = await self._orchestrator.exit_tangent()
            await self._emit(
                RabbitholeExited(
                    label=exit_.label,
                    points_recalled_during=exit_.points_recalled_during,
                    completion_pending=exit_.completion_pending,
                )
            )
            if exit_.completion_pending:
                await self._send_overlay()
        elif isinstance(message, DeclineRabbithole):
            await self._orchestrator.decline_tangent()
        elif isinstance(message, DismissOverlay):
            await self._orchestrator.dismiss_overlay()
        elif isinstance(message, Ping):
            await self._emit(Pong(timestamp=int(utc_now().timestamp() * 1000)))

    async def _handle_user_message(self, content: str) -> None:
        chunker = _Rechunker(self._emit, self._settings.chunk_size)
        result = await self._orchestrator.process_user_message(content, on_chunk=chunker.feed)
        await chunker.flush()
        await self._emit(
            AssistantComplete(full_content=result.response, total_chunks=chunker.count)
        )
        await self._announce(result)

    async def _announce(self, result: TurnResult) -> None:
        if result.tangent_exit is not None:
            await self._emit(
                RabbitholeExited(
                    label=result.tangent_exit.label,
                    points_recalled_during=result.tangent_exit.points_recalled_during,
                    completion_pending=result.tangent_exit.completion_pending,
                )
            )
        for point_id in result.recalled_this_turn:
            if point_id in self._announced:
                continue
            self._announced.add(point_id)
            await self._emit(
                PointRecalled(
                    point_id=point_id,
                    recalled_count=result.recalled_count,
                    total_points=result.total_points,
                )
            )
        if result.tangent_suggestion is not None:
            await self._emit(
                RabbitholeDetected(
                    topic=result.tangent_suggestion.topic,
                    event_id=result.tangent_suggestion.event_id,
                )
            )
        if result.completion_pending:
            await self._send_overlay()

    async def _handle_leave(self) -> None:
        snapshot = self._orchestrator.get_session_state()
        if snapshot is None:
            raise NoActiveSessionError("No session loaded")

        if snapshot.completion_pending:
            summary = await self._orchestrator.finalize_session()
            await self._emit(SessionComplete(summary=summary))
            return

        await self._orchestrator.pause_session()
        await self._emit(
            SessionPaused(
                session_id=snapshot.session_id,
                recalled_count=snapshot.recalled_count,
                total_points=snapshot.total_points,
            )
        )

    async def _send_overlay(self) -> None:
        if self._overlay_sent:
            return
        snapshot = self._orchestrator.get_session_state()
        assert snapshot is not None
        self._overlay_sent = True
        await self._emit(
            SessionCompleteOverlay(
                session_id=snapshot.session_id,
                recalled_count=snapshot.recalled_count,
                total_points=snapshot.total_points,
            )
        )

    async def _fail(self, code: ErrorCode, message: str, recoverable: bool) -> None:
        self._consecutive_errors += 1
        await self._error(code, message, recoverable)
        if self._consecutive_errors >= self._settings.max_consecutive_errors:
            self._closed = True
            logger.warning("channel_closed_after_errors", errors=self._consecutive_errors)

    async def _error(self, code: ErrorCode, message: str, recoverable: bool) -> None:
        logger.info("channel_error_sent", code=code.value, recoverable=recoverable)
        await self._emit(ErrorMessage(code=code, message=message, recoverable=recoverable))

    async def _emit(self, message: ServerMessage) -> None:
        await self._send(message.to_wire())

"""MongoDB repositories for dialogue_recall.

This module provides the MongoDB implementation of both storage
interfaces. Every write is a single-document upsert or update keyed by id.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Self

from dialogue_recall.config import MongoSettings
from dialogue_recall.infra.mongo.client import MongoClient
from dialogue_recall.interfaces.storage import MetricsStorageInterface, SessionStorageInterface
from dialogue_recall.logging import get_logger
from dialogue_recall.models.metrics import RecallOutcomeDTO, SessionMetricsSummary
from dialogue_recall.models.recall import (
    LearningPhase,
    MemoryState,
    RecallAttempt,
    RecallPointDTO,
    RecallRating,
    RecallSetDTO,
)
from dialogue_recall.models.session import (
    MessageRole,
    SessionDTO,
    SessionMessageDTO,
    SessionStatus,
)
from dialogue_recall.models.tangent import TangentEventDTO, TangentStatus

__all__ = [
    "MongoSessionRepository",
]

logger = get_logger(__name__)


class MongoSessionRepository(SessionStorageInterface, MetricsStorageInterface):
    """MongoDB implementation of SessionStorageInterface and MetricsStorageInterface.

    Provides persistence for recall sets and points, sessions, messages,
    tangent events, recall outcomes and session summaries.
    """

    config_class = MongoSettings

    def __init__(self, client: MongoClient) -> None:
        """Initialize repository with MongoDB client.

        Args:
            client: Connected MongoClient instance
        """
        self._client = client
        self._owns_client = False

    @classmethod
    async def from_config(cls, config: MongoSettings) -> Self:
        """Factory method for orchestrator instantiation.

        Creates a MongoClient, connects, creates indexes, and returns repository.

        Args:
            config: MongoDB settings

        Returns:
            Connected MongoSessionRepository instance
        """
        client = MongoClient(config)
        await client.connect()
        await client.create_indexes()

        instance = cls(client)
        instance._owns_client = True
        return instance

    @classmethod
    async def from_dict(cls, config: dict[str, Any]) -> Self:
        """Factory method for custom config dict.

        Args:
            config: Dictionary with MongoDB settings

        Returns:
            Connected MongoSessionRepository instance
        """
        settings = MongoSettings(**config)
        return await cls.from_config(settings)

    async def close(self) -> None:
        """Close owned resources."""
        if self._owns_client and self._client:
            await self._client.disconnect()

    # Recall set and point operations
    async def save_recall_set(self, recall_set: RecallSetDTO) -> str:
        """Save or update a recall set."""
        await self._client.recall_sets.replace_one(
            {"id": recall_set.id},
            self._recall_set_to_doc(recall_set),
            upsert=True,
        )
        return recall_set.id

    async def get_recall_set(self, recall_set_id: str) -> RecallSetDTO | None:
        """Get a recall set by ID."""
        doc = await self._client.recall_sets.find_one({"id": recall_set_id})
        return self._doc_to_recall_set(doc) if doc else None

    async def save_recall_point(self, point: RecallPointDTO) -> str:
        """Save or update a recall point."""
        await self._client.recall_points.replace_one(
            {"id": point.id},
            self._point_to_doc(point),
            upsert=True,
        )
        return point.id

    async def get_recall_point(self, point_id: str) -> RecallPointDTO | None:
        """Get a recall point by ID."""
        doc = await self._client.recall_points.find_one({"id": point_id})
        return self._doc_to_point(doc) if doc else None

    async def find_due_points(self, recall_set_id: str, as_of: datetime) -> list[RecallPointDTO]:
        """Find points of a set due at or before ``as_of``, earliest first."""
        cursor = self._client.recall_points.find(
            {"recall_set_id": recall_set_id, "memory_state.due": {"$lte": as_of}}
        ).sort("memory_state.due", 1)
        return [self._doc_to_point(doc) async for doc in cursor]

    async def update_memory_state(self, point: RecallPointDTO) -> None:
        """Persist a point's memory state and recall history."""
        await self._client.recall_points.update_one(
            {"id": point.id},
            {
                "$set": {
                    "memory_state": self._memory_state_to_doc(point.memory_state),
                    "recall_history": [self._attempt_to_doc(a) for a in point.recall_history],
                }
            },
        )

    # Session operations
    async def create_session(self, session: SessionDTO) -> str:
        """Create a session."""
        await self._client.sessions.replace_one(
            {"id": session.id},
            self._session_to_doc(session),
            upsert=True,
        )
        logger.debug("session_created", session_id=session.id)
        return session.id

    async def get_session(self, session_id: str) -> SessionDTO | None:
        """Get a session by ID."""
        doc = await self._client.sessions.find_one({"id": session_id})
        return self._doc_to_session(doc) if doc else None

    async def find_in_progress_session(self, recall_set_id: str) -> SessionDTO | None:
        """Find the in-progress session of a set."""
        doc = await self._client.sessions.find_one(
            {"recall_set_id": recall_set_id, "status": SessionStatus.IN_PROGRESS.value}
        )
        return self._doc_to_session(doc) if doc else None

    async def find_paused_session(self, recall_set_id: str) -> SessionDTO | None:
        """Find the most recently started paused session of a set."""
        cursor = (
            self._client.sessions.find(
                {"recall_set_id": recall_set_id, "status": SessionStatus.PAUSED.value}
            )
            .sort("started_at", -1)
            .limit(1)
        )
        async for doc in cursor:
            return self._doc_to_session(doc)
        return None

    async def update_session_progress(
        self,
        session_id: str,
        recalled_point_ids: Sequence[str],
        active_tangent_id: str | None,
    ) -> None:
        """Persist the recalled set and active tangent reference."""
        await self._client.sessions.update_one(
            {"id": session_id},
            {
                "$set": {
                    "recalled_point_ids": list(recalled_point_ids),
                    "active_tangent_id": active_tangent_id,
                }
            },
        )

    async def complete_session(self, session_id: str, ended_at: datetime) -> None:
        """Mark a session completed."""
        await self._set_status(session_id, SessionStatus.COMPLETED, ended_at=ended_at)

    async def abandon_session(self, session_id: str, ended_at: datetime) -> None:
        """Mark a session abandoned."""
        await self._set_status(session_id, SessionStatus.ABANDONED, ended_at=ended_at)

    async def pause_session(self, session_id: str) -> None:
        """Mark a session paused."""
        await self._set_status(session_id, SessionStatus.PAUSED)

    async def resume_session(self, session_id: str) -> None:
        """Mark a paused session in progress."""
        await self._set_status(session_id, SessionStatus.IN_PROGRESS)

    async def _set_status(
        self,
        session_id: str,
        status: SessionStatus,
        ended_at: datetime | None = None,
    ) -> None:
        update: dict[str, Any] = {"status": status.value}
        if ended_at is not None:
            update["ended_at"] = ended_at
        await self._client.sessions.update_one({"id": session_id}, {"$set": update})

    # Message operations
    async def create_message(self, message: SessionMessageDTO) -> str:
        """Append a message to a session."""
        await self._client.session_messages.replace_one(
            {"id": message.id},
            self._message_to_doc(message),
            upsert=True,
        )
        return message.id

    async def get_session_messages(self, session_id: str) -> list[SessionMessageDTO]:
        """Get all messages of a session in timestamp order."""
        cursor = self._client.session_messages.find({"session_id": session_id}).sort(
            "timestamp", 1
        )
        return [self._doc_to_message(doc) async for doc in cursor]

    # Metrics operations
    async def save_recall_outcome(self, outcome: RecallOutcomeDTO) -> str:
        """Save a resolved recall outcome."""
        await self._client.recall_outcomes.replace_one(
            {"id": outcome.id},
            self._outcome_to_doc(outcome),
            upsert=True,
        )
        return outcome.id

    async def get_recall_outcomes(self, session_id: str) -> list[RecallOutcomeDTO]:
        """Get outcomes recorded for a session, oldest first."""
        cursor = self._client.recall_outcomes.find({"session_id": session_id}).sort(
            "recorded_at", 1
        )
        return [self._doc_to_outcome(doc) async for doc in cursor]

    async def save_tangent_event(self, event: TangentEventDTO) -> str:
        """Save or update a tangent event."""
        await self._client.tangent_events.replace_one(
            {"id": event.id},
            self._tangent_to_doc(event),
            upsert=True,
        )
        return event.id

    async def get_tangent_events(self, session_id: str) -> list[TangentEventDTO]:
        """Get tangent events of a session, oldest first."""
        cursor = self._client.tangent_events.find({"session_id": session_id}).sort(
            "created_at", 1
        )
        return [self._doc_to_tangent(doc) async for doc in cursor]

    async def save_session_metrics(self, summary: SessionMetricsSummary) -> str:
        """Save a finalized session summary."""
        await self._client.session_metrics.replace_one(
            {"session_id": summary.session_id},
            summary.model_dump(),
            upsert=True,
        )
        return summary.session_id

    async def get_session_metrics(self, session_id: str) -> SessionMetricsSummary | None:
        """Get the finalized summary of a session."""
        doc = await self._client.session_metrics.find_one({"session_id": session_id})
        if not doc:
            return None
        doc.pop("_id", None)
        return SessionMetricsSummary.model_validate(doc)

    # Conversion helpers
    @staticmethod
    def _recall_set_to_doc(recall_set: RecallSetDTO) -> dict[str, Any]:
        return {
            "id": recall_set.id,
            "name": recall_set.name,
            "description": recall_set.description,
            "schema_version": recall_set.schema_version,
        }

    @staticmethod
    def _doc_to_recall_set(doc: dict[str, Any]) -> RecallSetDTO:
        return RecallSetDTO(
            id=doc["id"],
            name=doc["name"],
            description=doc.get("description", ""),
            schema_version=doc.get("schema_version", 1),
        )

    @staticmethod
    def _memory_state_to_doc(state: MemoryState) -> dict[str, Any]:
        return {
            "stability": state.stability,
            "difficulty": state.difficulty,
            "due": state.due,
            "repetitions": state.repetitions,
            "lapses": state.lapses,
            "phase": state.phase.value,
            "learning_step": state.learning_step,
            "last_review": state.last_review,
            "schema_version": state.schema_version,
        }

    @staticmethod
    def _doc_to_memory_state(doc: dict[str, Any]) -> MemoryState:
        return MemoryState(
            stability=doc.get("stability", 0.0),
            difficulty=doc.get("difficulty", 0.0),
            due=doc["due"],
            repetitions=doc.get("repetitions", 0),
            lapses=doc.get("lapses", 0),
            phase=LearningPhase(doc.get("phase", LearningPhase.NEW.value)),
            learning_step=doc.get("learning_step"),
            last_review=doc.get("last_review"),
            schema_version=doc.get("schema_version", 1),
        )

    @staticmethod
    def _attempt_to_doc(attempt: RecallAttempt) -> dict[str, Any]:
        return {
            "timestamp": attempt.timestamp,
            "success": attempt.success,
            "confidence": attempt.confidence,
        }

    def _point_to_doc(self, point: RecallPointDTO) -> dict[str, Any]:
        return {
            "id": point.id,
            "recall_set_id": point.recall_set_id,
            "content": point.content,
            "context": point.context,
            "memory_state": self._memory_state_to_doc(point.memory_state),
            "recall_history": [self._attempt_to_doc(a) for a in point.recall_history],
            "schema_version": point.schema_version,
        }

    def _doc_to_point(self, doc: dict[str, Any]) -> RecallPointDTO:
        return RecallPointDTO(
            id=doc["id"],
            recall_set_id=doc["recall_set_id"],
            content=doc["content"],
            context=doc.get("context", ""),
            memory_state=self._doc_to_memory_state(doc["memory_state"]),
            recall_history=tuple(
                RecallAttempt(
                    timestamp=a["timestamp"],
                    success=a["success"],
                    confidence=a.get("confidence"),
                )
                for a in doc.get("recall_history", [])
            ),
            schema_version=doc.get("schema_version", 1),
        )

    @staticmethod
    def _session_to_doc(session: SessionDTO) -> dict[str, Any]:
        return {
            "id": session.id,
            "recall_set_id": session.recall_set_id,
            "target_point_ids": list(session.target_point_ids),
            "status": session.status.value,
            "started_at": session.started_at,
            "ended_at": session.ended_at,
            "recalled_point_ids": list(session.recalled_point_ids),
            "active_tangent_id": session.active_tangent_id,
            "schema_version": session.schema_version,
        }

    @staticmethod
    def _doc_to_session(doc: dict[str, Any]) -> SessionDTO:
        return SessionDTO(
            id=doc["id"],
            recall_set_id=doc["recall_set_id"],
            target_point_ids=tuple(doc.get("target_point_ids", [])),
            status=SessionStatus(doc["status"]),
            started_at=doc["started_at"],
            ended_at=doc.get("ended_at"),
            recalled_point_ids=tuple(doc.get("recalled_point_ids", [])),
            active_tangent_id=doc.get("active_tangent_id"),
            schema_version=doc.get("schema_version", 1),
        )

    @staticmethod
    def _message_to_doc(message: SessionMessageDTO) -> dict[str, Any]:
        return {
            "id": message.id,
            "session_id": message.session_id,
            "role": message.role.value,
            "content": message.content,
            "timestamp": message.timestamp,
            "token_count": message.token_count,
            "schema_version": message.schema_version,
        }

    @staticmethod
    def _doc_to_message(doc: dict[str, Any]) -> SessionMessageDTO:
        return SessionMessageDTO(
            id=doc["id"],
            session_id=doc["session_id"],
            role=MessageRole(doc["role"]),
            content=doc["content"],
            timestamp=doc["timestamp"],
            token_count=doc.get("token_count"),
            schema_version=doc.get("schema_version", 1),
        )

    @staticmethod
    def _tangent_to_doc(event: TangentEventDTO) -> dict[str, Any]:
        return {
            "id": event.id,
            "session_id": event.session_id,
            "topic": event.topic,
            "trigger_message_index": event.trigger_message_index,
            "return_message_index": event.return_message_index,
            "depth": event.depth,
            "related_point_ids": list(event.related_point_ids),
            "user_initiated": event.user_initiated,
            "status": event.status.value,
            "created_at": event.created_at,
            "schema_version": event.schema_version,
        }

    @staticmethod
    def _doc_to_tangent(doc: dict[str, Any]) -> TangentEventDTO:
        return TangentEventDTO(
            id=doc["id"],
            session_id=doc["session_id"],
            topic=doc["topic"],
            trigger_message_index=doc["trigger_message_index"],
            return_message_index=doc.get("return_message_index"),
            depth=doc.get("depth", 1),
            related_point_ids=tuple(doc.get("related_point_ids", [])),
            user_initiated=doc.get("user_initiated", True),
            status=TangentStatus(doc["status"]),
            created_at=doc["created_at"],
            schema_version=doc.get("schema_version", 1),
        )

    @staticmethod
    def _outcome_to_doc(outcome: RecallOutcomeDTO) -> dict[str, Any]:
        return {
            "id": outcome.id,
            "session_id": outcome.session_id,
            "recall_point_id": outcome.recall_point_id,
            "success": outcome.success,
            "confidence": outcome.confidence,
            "rating": outcome.rating.value if outcome.rating else None,
            "reasoning": outcome.reasoning,
            "message_index_start": outcome.message_index_start,
            "message_index_end": outcome.message_index_end,
            "duration_ms": outcome.duration_ms,
            "recorded_at": outcome.recorded_at,
            "schema_version": outcome.schema_version,
        }

    @staticmethod
    def _doc_to_outcome(doc: dict[str, Any]) -> RecallOutcomeDTO:
        rating = doc.get("rating")
        return RecallOutcomeDTO(
            id=doc["id"],
            session_id=doc["session_id"],
            recall_point_id=doc["recall_point_id"],
            success=doc["success"],
            confidence=doc["confidence"],
            rating=RecallRating(rating) if rating else None,
            reasoning=doc.get("reasoning", ""),
            message_index_start=doc["message_index_start"],
            message_index_end=doc["message_index_end"],
            duration_ms=doc.get("duration_ms", 0),
            recorded_at=doc["recorded_at"],
            schema_version=doc.get("schema_version", 1),
        )

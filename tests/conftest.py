"""Shared test fixtures for dialogue_recall.

This module provides pytest fixtures used across all tests.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from dialogue_recall.config import SessionSettings, TangentSettings
from dialogue_recall.infra.mongo.repositories import MongoSessionRepository
from dialogue_recall.models.recall import MemoryState, RecallPointDTO, RecallSetDTO
from dialogue_recall.services.prompts import DefaultPromptBuilder
from dialogue_recall.services.scheduler import RecallScheduler
from dialogue_recall.services.tangent_detector import TangentDetector
from dialogue_recall.session.events import SessionEventChannel
from dialogue_recall.session.orchestrator import SessionOrchestrator
from tests.mocks.factories import NOW, FakeClock
from tests.mocks.mock_llm import ScriptedEvaluator, ScriptedLLM
from tests.mocks.mock_mongo import MockMongoClient


# Mock fixtures
@pytest.fixture
def mock_storage() -> AsyncMock:
    """Create mock session storage interface."""
    storage = AsyncMock()
    storage.find_in_progress_session.return_value = None
    storage.find_paused_session.return_value = None
    storage.find_due_points.return_value = []
    storage.get_session_messages.return_value = []
    storage.create_session.return_value = "sess_1"
    storage.create_message.return_value = "msg_1"
    return storage


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mongo_client() -> MockMongoClient:
    return MockMongoClient()


@pytest.fixture
def repository(mongo_client: MockMongoClient) -> MongoSessionRepository:
    return MongoSessionRepository(mongo_client)  # type: ignore[arg-type]


@pytest.fixture
def tutor_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def evaluator() -> ScriptedEvaluator:
    return ScriptedEvaluator()


@pytest.fixture
def scheduler() -> RecallScheduler:
    return RecallScheduler()


# Sample data fixtures
@pytest.fixture
def sample_recall_set() -> RecallSetDTO:
    return RecallSetDTO(
        id="set_history",
        name="Medieval England",
        description="Key facts about English constitutional history",
    )


@pytest.fixture
def sample_points() -> list[RecallPointDTO]:
    """Three new points due before NOW, in due order."""
    contents = [
        ("pt_magna", "Magna Carta was sealed in 1215 at Runnymede"),
        ("pt_parliament", "Simon de Montfort's parliament met in 1265"),
        ("pt_model", "The Model Parliament was summoned in 1295"),
    ]
    return [
        RecallPointDTO(
            id=point_id,
            recall_set_id="set_history",
            content=content,
            memory_state=MemoryState(due=NOW - timedelta(days=3 - i)),
        )
        for i, (point_id, content) in enumerate(contents)
    ]


@pytest_asyncio.fixture
async def seeded_repository(
    repository: MongoSessionRepository,
    sample_recall_set: RecallSetDTO,
    sample_points: list[RecallPointDTO],
) -> MongoSessionRepository:
    await repository.save_recall_set(sample_recall_set)
    for point in sample_points:
        await repository.save_recall_point(point)
    return repository


@pytest.fixture
def events() -> SessionEventChannel:
    return SessionEventChannel()


@pytest.fixture
def session_settings() -> SessionSettings:
    return SessionSettings()


@pytest.fixture
def orchestrator(
    seeded_repository: MongoSessionRepository,
    tutor_llm: ScriptedLLM,
    evaluator: ScriptedEvaluator,
    scheduler: RecallScheduler,
    events: SessionEventChannel,
    session_settings: SessionSettings,
    clock: FakeClock,
) -> SessionOrchestrator:
    """Orchestrator over the seeded in-memory repository, tangents disabled."""
    return SessionOrchestrator(
        seeded_repository,
        tutor_llm,
        evaluator=evaluator,
        scheduler=scheduler,
        metrics_store=seeded_repository,
        events=events,
        settings=session_settings,
        clock=clock,
    )


@pytest.fixture
def detector_llm() -> ScriptedLLM:
    return ScriptedLLM(default='{"is_tangent": false, "confidence": 0.1}')


@pytest.fixture
def tangent_orchestrator(
    seeded_repository: MongoSessionRepository,
    tutor_llm: ScriptedLLM,
    detector_llm: ScriptedLLM,
    evaluator: ScriptedEvaluator,
    scheduler: RecallScheduler,
    events: SessionEventChannel,
    clock: FakeClock,
) -> SessionOrchestrator:
    """Orchestrator with a tangent detector driven by ``detector_llm``."""
    detector = TangentDetector(
        detector_llm,
        DefaultPromptBuilder(),
        TangentSettings(min_messages=1, cooldown_messages=2),
    )
    return SessionOrchestrator(
        seeded_repository,
        tutor_llm,
        evaluator=evaluator,
        scheduler=scheduler,
        tangent_detector=detector,
        metrics_store=seeded_repository,
        events=events,
        clock=clock,
    )

"""Recall evaluation for dialogue_recall.

One LLM call per point over a bounded excerpt of the conversation.
Provider failures (LLMError) and unparseable output degrade to a
"not recalled, zero confidence" evaluation so an evaluator outage never
stalls a session. Anything else propagates.
"""

from collections.abc import Sequence

from pydantic import BaseModel

from dialogue_recall.config import (
    EASY_CONFIDENCE,
    GOOD_CONFIDENCE,
    HARD_CONFIDENCE,
    EvaluatorSettings,
    SessionSettings,
)
from dialogue_recall.errors import LLMError
from dialogue_recall.interfaces.evaluator import EvaluatorInterface
from dialogue_recall.interfaces.llm import LLMInterface
from dialogue_recall.interfaces.prompts import PromptBuilderInterface
from dialogue_recall.logging import get_logger
from dialogue_recall.models.evaluation import EnhancedRecallEvaluation, RecallEvaluation
from dialogue_recall.models.recall import RecallPointDTO, RecallRating
from dialogue_recall.models.session import MessageRole, SessionMessageDTO
from dialogue_recall.utils.json_response import clamp_confidence, extract_json_object

__all__ = [
    "EnhancedRecallEvaluator",
    "RatingBands",
    "RecallEvaluator",
    "rating_for_confidence",
]

logger = get_logger(__name__)


class RatingBands(BaseModel, frozen=True):
    """Inclusive lower bounds of the easy/good/hard confidence bands."""

    easy: float = EASY_CONFIDENCE
    good: float = GOOD_CONFIDENCE
    hard: float = HARD_CONFIDENCE

    @classmethod
    def from_settings(cls, settings: SessionSettings) -> "RatingBands":
        return cls(
            easy=settings.easy_confidence,
            good=settings.good_confidence,
            hard=settings.hard_confidence,
        )


def rating_for_confidence(confidence: float, bands: RatingBands | None = None) -> RecallRating:
    """Map an evaluation confidence onto a scheduler rating.

    Values outside [0, 1] fall into the nearest band; NaN rates as forgot.
    """
    bands = bands or RatingBands()
    if confidence >= bands.easy:
        return RecallRating.EASY
    if confidence >= bands.good:
        return RecallRating.GOOD
    if confidence >= bands.hard:
        return RecallRating.HARD
    return RecallRating.FORGOT


class RecallEvaluator(EvaluatorInterface):
    """LLM-backed evaluator returning success, confidence and reasoning."""

    config_class = EvaluatorSettings
    enhanced = False

    def __init__(
        self,
        llm: LLMInterface,
        prompts: PromptBuilderInterface,
        settings: EvaluatorSettings | None = None,
    ) -> None:
        """Initialize evaluator.

        Args:
            llm: LLM client used for judgments
            prompts: Prompt builder
            settings: Window size and sampling settings
        """
        self._llm = llm
        self._prompts = prompts
        self._settings = settings or EvaluatorSettings()

    async def evaluate(
        self,
        point: RecallPointDTO,
        recent_messages: Sequence[SessionMessageDTO],
    ) -> RecallEvaluation:
        """Judge whether the learner demonstrated a point.

        Args:
            point: Point to judge
            recent_messages: Conversation so far, oldest first

        Returns:
            Parsed evaluation, or the degraded default on failure
        """
        excerpt = self._excerpt(recent_messages)
        if not any(m.role is MessageRole.USER for m in excerpt):
            return RecallEvaluation(
                success=False, confidence=0.0, reasoning="No learner messages to evaluate"
            )

        prompt = self._prompts.evaluation_prompt(point, excerpt, enhanced=self.enhanced)
        try:
            response = await self._llm.complete(
                prompt,
                temperature=self._settings.temperature,
                max_tokens=self._settings.max_tokens,
            )
        except LLMError as e:
            logger.warning(
                "evaluation_call_failed",
                point_id=point.id,
                error_type=e.error_type.value,
                error=str(e),
            )
            return RecallEvaluation.degraded(str(e))

        try:
            data = extract_json_object(response.text)
        except ValueError as e:
            logger.warning("evaluation_unparseable", point_id=point.id, error=str(e))
            return RecallEvaluation.degraded("malformed evaluator output").model_copy(
                update={"usage": response.usage}
            )

        evaluation = self._build(data).model_copy(update={"usage": response.usage})
        logger.debug(
            "point_evaluated",
            point_id=point.id,
            success=evaluation.success,
            confidence=evaluation.confidence,
        )
        return evaluation

    def _excerpt(self, messages: Sequence[SessionMessageDTO]) -> list[SessionMessageDTO]:
        conversation = [m for m in messages if m.role is not MessageRole.SYSTEM]
        return conversation[-self._settings.window_size :]

    def _build(self, data: dict) -> RecallEvaluation:
        return RecallEvaluation(
            success=data.get("success") is True,
            confidence=clamp_confidence(data.get("confidence", 0.0)),
            reasoning=str(data.get("reasoning", "")),
        )


class EnhancedRecallEvaluator(RecallEvaluator):
    """Evaluator that also reports concept coverage and a suggested rating."""

    enhanced = True

    def __init__(
        self,
        llm: LLMInterface,
        prompts: PromptBuilderInterface,
        settings: EvaluatorSettings | None = None,
        bands: RatingBands | None = None,
    ) -> None:
        super().__init__(llm, prompts, settings)
        self._bands = bands or RatingBands()

    def _build(self, data: dict) -> EnhancedRecallEvaluation:
        confidence = clamp_confidence(data.get("confidence", 0.0))
        return EnhancedRecallEvaluation(
            success=data.get("success") is True,
            confidence=confidence,
            reasoning=str(data.get("reasoning", "")),
            demonstrated_concepts=_string_tuple(data.get("demonstrated_concepts")),
            missed_concepts=_string_tuple(data.get("missed_concepts")),
            suggested_rating=rating_for_confidence(confidence, self._bands),
        )


def _string_tuple(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if item)

"""Default prompt text for dialogue_recall."""

from collections.abc import Sequence

from dialogue_recall.interfaces.prompts import PromptBuilderInterface
from dialogue_recall.models.recall import RecallPointDTO, RecallSetDTO
from dialogue_recall.models.session import MessageRole, SessionMessageDTO

__all__ = [
    "DefaultPromptBuilder",
    "format_excerpt",
]

_SPEAKERS = {
    MessageRole.USER: "Learner",
    MessageRole.ASSISTANT: "Tutor",
    MessageRole.SYSTEM: "System",
}


def format_excerpt(messages: Sequence[SessionMessageDTO]) -> str:
    """Render messages as a speaker-labelled transcript."""
    return "\n".join(f"{_SPEAKERS[m.role]}: {m.content}" for m in messages)


def _point_line(point: RecallPointDTO) -> str:
    if point.context:
        return f"- [{point.id}] {point.content} (context: {point.context})"
    return f"- [{point.id}] {point.content}"


class DefaultPromptBuilder(PromptBuilderInterface):
    """Prompts for a Socratic recall tutor."""

    def tutor_system_prompt(
        self,
        recall_set: RecallSetDTO,
        current_point: RecallPointDTO | None,
        recalled_points: Sequence[RecallPointDTO],
        remaining_points: Sequence[RecallPointDTO],
    ) -> str:
        lines = [
            f'You are a tutor running a recall session on "{recall_set.name}".',
            recall_set.description,
            "",
            "Help the learner retrieve facts from memory. Ask open questions, give",
            "hints only when they are stuck, and never state a fact before the learner",
            "has tried to recall it. Keep replies short and conversational.",
        ]
        if current_point is not None:
            lines += [
                "",
                "Point you are currently probing (do not reveal it):",
                _point_line(current_point),
            ]
        current_id = current_point.id if current_point else None
        others = [p for p in remaining_points if p.id != current_id]
        if others:
            lines += ["", "Other points still to recall:"]
            lines += [_point_line(p) for p in others]
        if recalled_points:
            lines += ["", "Already recalled (no need to probe again):"]
            lines += [_point_line(p) for p in recalled_points]
        if current_point is None:
            lines += [
                "",
                "Every point has been recalled. Congratulate the learner and follow",
                "their lead if they want to keep discussing.",
            ]
        return "\n".join(lines)

    def opening_prompt(self, point: RecallPointDTO, resumed: bool) -> str:
        if resumed:
            return (
                "We are resuming an earlier recall session. Welcome the learner back "
                "briefly and ask a question that leads them toward the point you are "
                "probing."
            )
        return (
            "Begin the recall discussion. Ask an opening question that invites the "
            "learner to recall the point you are probing without giving it away."
        )

    def feedback_instruction(
        self,
        recalled_points: Sequence[RecallPointDTO],
        next_point: RecallPointDTO | None,
    ) -> str:
        recalled = "\n".join(_point_line(p) for p in recalled_points)
        if next_point is None:
            return (
                "The learner just recalled:\n"
                f"{recalled}\n"
                "That completes the session. Acknowledge it warmly and summarise what "
                "they remembered."
            )
        return (
            "The learner just recalled:\n"
            f"{recalled}\n"
            "Confirm briefly what they got right, then move on with a question about "
            "the next point."
        )

    def evaluation_prompt(
        self,
        point: RecallPointDTO,
        excerpt: Sequence[SessionMessageDTO],
        enhanced: bool,
    ) -> str:
        fields = (
            '{"success": true|false, "confidence": 0.0-1.0, "reasoning": "...", '
            '"demonstrated_concepts": ["..."], "missed_concepts": ["..."]}'
            if enhanced
            else '{"success": true|false, "confidence": 0.0-1.0, "reasoning": "..."}'
        )
        return (
            "Judge whether the learner has recalled the target fact in the "
            "conversation below. The learner must produce the substance of the fact "
            "themselves; the tutor stating it does not count.\n\n"
            f"Target fact: {point.content}\n"
            + (f"Context: {point.context}\n" if point.context else "")
            + f"\nConversation:\n{format_excerpt(excerpt)}\n\n"
            f"Respond with JSON only:\n{fields}"
        )

    def tangent_detection_prompt(
        self,
        excerpt: Sequence[SessionMessageDTO],
        current_point: RecallPointDTO | None,
        all_points: Sequence[RecallPointDTO],
        known_topics: Sequence[str],
    ) -> str:
        current = current_point.content if current_point else "(none, free discussion)"
        seen = ", ".join(known_topics) or "(none)"
        return (
            "Decide whether this study conversation has drifted onto a tangent "
            "unrelated to the point being recalled.\n\n"
            f"Current point: {current}\n"
            "All session points:\n"
            + "\n".join(_point_line(p) for p in all_points)
            + f"\nTangent topics already raised: {seen}\n\n"
            f"Conversation:\n{format_excerpt(excerpt)}\n\n"
            "Respond with JSON only:\n"
            '{"is_tangent": true|false, "topic": "short label", '
            '"initiated_by": "user"|"assistant", "related_point_ids": ["..."], '
            '"confidence": 0.0-1.0, "reasoning": "..."}'
        )

    def tangent_return_prompt(
        self,
        topic: str,
        excerpt: Sequence[SessionMessageDTO],
        current_point: RecallPointDTO | None,
    ) -> str:
        current = current_point.content if current_point else "(none, free discussion)"
        return (
            f'The learner went on a tangent about "{topic}". Decide whether the latest '
            "messages show them returning to the study material.\n\n"
            f"Study point: {current}\n\n"
            f"Conversation since the tangent began:\n{format_excerpt(excerpt)}\n\n"
            "Respond with JSON only:\n"
            '{"has_returned": true|false, "confidence": 0.0-1.0, "reasoning": "..."}'
        )

    def tangent_system_prompt(
        self,
        topic: str,
        recall_set: RecallSetDTO,
        current_point: RecallPointDTO | None,
    ) -> str:
        lines = [
            f'The learner chose to explore "{topic}" during a study session on '
            f'"{recall_set.name}".',
            "Discuss it with curiosity and depth, answer their questions directly,",
            "and keep replies focused. Do not quiz them on the study points here.",
        ]
        if current_point is not None:
            lines.append(
                "When the discussion winds down, you may mention the study point "
                "they were working on as a way back."
            )
        return "\n".join(lines)

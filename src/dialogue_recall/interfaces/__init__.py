"""Interface contracts for dialogue_recall.

This module exports all Protocol-based interfaces for dependency injection.
"""

from dialogue_recall.interfaces.evaluator import EvaluatorInterface
from dialogue_recall.interfaces.llm import LLMInterface, Prompt
from dialogue_recall.interfaces.prompts import PromptBuilderInterface
from dialogue_recall.interfaces.storage import MetricsStorageInterface, SessionStorageInterface

__all__ = [
    "EvaluatorInterface",
    "LLMInterface",
    "MetricsStorageInterface",
    "Prompt",
    "PromptBuilderInterface",
    "SessionStorageInterface",
]

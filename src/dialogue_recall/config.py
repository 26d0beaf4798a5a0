"""Configuration management for dialogue_recall.

This module provides typed configuration classes using pydantic-settings.
Configuration is loaded from environment variables with optional .env file support.

The recall threshold and the confidence bands that map an evaluation onto a
scheduler rating are exported as named constants so callers and tests can
refer to the boundaries directly.
"""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_COOLDOWN_MESSAGES",
    "DEFAULT_RECALL_THRESHOLD",
    "EASY_CONFIDENCE",
    "GOOD_CONFIDENCE",
    "HARD_CONFIDENCE",
    "MAX_TANGENT_DEPTH",
    "DialogueRecallConfig",
    "EvaluatorSettings",
    "LLMSettings",
    "LoggingSettings",
    "MongoSettings",
    "SchedulerSettings",
    "SessionSettings",
    "TangentSettings",
]

# A point counts as recalled when success is reported at or above this confidence
DEFAULT_RECALL_THRESHOLD = 0.6

# Lower bounds (inclusive) of the confidence bands for easy / good / hard;
# anything below HARD_CONFIDENCE rates as forgot
EASY_CONFIDENCE = 0.85
GOOD_CONFIDENCE = 0.6
HARD_CONFIDENCE = 0.3

DEFAULT_COOLDOWN_MESSAGES = 3
MAX_TANGENT_DEPTH = 3
DEFAULT_CHUNK_SIZE = 20


class MongoSettings(BaseSettings):
    """MongoDB connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DIALOGUE_RECALL_MONGO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    uri: SecretStr = SecretStr("mongodb://localhost:27017")
    database: str = "dialogue_recall"
    collection_prefix: str = ""


class LLMSettings(BaseSettings):
    """LLM provider settings."""

    model_config = SettingsConfigDict(
        env_prefix="DIALOGUE_RECALL_LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: str = "anthropic"  # "openai" or "anthropic"
    api_key: SecretStr | None = None
    model: str = "claude-sonnet-4-20250514"
    timeout_seconds: float = 60.0
    max_retries: int = 2


class LoggingSettings(BaseSettings):
    """Logging output settings."""

    model_config = SettingsConfigDict(
        env_prefix="DIALOGUE_RECALL_LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: str = "INFO"
    json_output: bool = False


class SchedulerSettings(BaseSettings):
    """Spaced-repetition scheduler settings.

    Fuzzing stays off by default so that advancing a memory state is a pure
    function of (state, rating, now).
    """

    model_config = SettingsConfigDict(
        env_prefix="DIALOGUE_RECALL_SCHEDULER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    desired_retention: float = 0.9
    maximum_interval_days: int = 365
    enable_fuzzing: bool = False


class EvaluatorSettings(BaseSettings):
    """Recall evaluator settings."""

    model_config = SettingsConfigDict(
        env_prefix="DIALOGUE_RECALL_EVALUATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    window_size: int = 10
    temperature: float = 0.3
    max_tokens: int = 512


class TangentSettings(BaseSettings):
    """Tangent ("rabbit hole") detection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DIALOGUE_RECALL_TANGENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    detection_threshold: float = 0.6
    return_threshold: float = 0.6
    window_size: int = 10
    min_messages: int = 2
    cooldown_messages: int = DEFAULT_COOLDOWN_MESSAGES
    max_depth: int = MAX_TANGENT_DEPTH
    temperature: float = 0.3
    max_tokens: int = 512


class SessionSettings(BaseSettings):
    """Session orchestration settings."""

    model_config = SettingsConfigDict(
        env_prefix="DIALOGUE_RECALL_SESSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    recall_threshold: float = DEFAULT_RECALL_THRESHOLD
    easy_confidence: float = EASY_CONFIDENCE
    good_confidence: float = GOOD_CONFIDENCE
    hard_confidence: float = HARD_CONFIDENCE

    tutor_temperature: float = 0.7
    tutor_max_tokens: int = 512
    tangent_max_tokens: int = 512

    # None disables forced resolution of a point that never qualifies
    max_messages_per_point: int | None = None

    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_consecutive_errors: int = 5


class DialogueRecallConfig(BaseSettings):
    """Main configuration aggregating all settings.

    Example usage:
        config = DialogueRecallConfig()
        mongo_uri = config.mongo.uri.get_secret_value()
        threshold = config.session.recall_threshold
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mongo: MongoSettings = MongoSettings()
    llm: LLMSettings = LLMSettings()
    logging: LoggingSettings = LoggingSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    evaluator: EvaluatorSettings = EvaluatorSettings()
    tangent: TangentSettings = TangentSettings()
    session: SessionSettings = SessionSettings()

    # Persist metrics and tangent events alongside the session
    metrics_enabled: bool = True

"""Provider SDK exception translation for dialogue_recall.

The OpenAI and Anthropic SDKs share one exception hierarchy layout, so a
single mapping covers both. Providers pass their SDK module in.
"""

from types import ModuleType

from dialogue_recall.errors import LLMError, LLMErrorType

__all__ = [
    "translate_sdk_error",
]


def translate_sdk_error(sdk: ModuleType, error: Exception) -> LLMError:
    """Map an SDK exception onto a typed LLMError.

    Args:
        sdk: The ``openai`` or ``anthropic`` module
        error: Exception raised by the SDK client

    Returns:
        LLMError carrying the failure classification and HTTP status
    """
    status_code = getattr(error, "status_code", None)

    # APITimeoutError subclasses APIConnectionError
    if isinstance(error, sdk.APITimeoutError):
        error_type = LLMErrorType.TIMEOUT
    elif isinstance(error, sdk.APIConnectionError):
        error_type = LLMErrorType.NETWORK
    elif isinstance(error, (sdk.AuthenticationError, sdk.PermissionDeniedError)):
        error_type = LLMErrorType.AUTHENTICATION
    elif isinstance(error, sdk.RateLimitError):
        error_type = LLMErrorType.RATE_LIMIT
    elif isinstance(error, (sdk.BadRequestError, sdk.NotFoundError, sdk.UnprocessableEntityError)):
        error_type = LLMErrorType.INVALID_REQUEST
    elif isinstance(error, sdk.InternalServerError) or (status_code or 0) >= 500:
        error_type = LLMErrorType.SERVER_ERROR
    else:
        error_type = LLMErrorType.UNKNOWN

    return LLMError(error_type, str(error) or type(error).__name__, status_code=status_code)

"""Error hierarchy and retry helpers for tinyagent.

Provides:
- Base exception carrying a stable code and serializable details
- Reasoning-loop error codes and the AgentError family
- Workflow construction and node-execution errors
- Opt-in retry with exponential backoff and jitter
"""

import asyncio
import inspect
import random
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

from tinyagent.logging import get_logger

if TYPE_CHECKING:
    from tinyagent.cancellation import CancellationToken

logger = get_logger(__name__, component="errors")


# ============================================================================
# Exception Hierarchy
# ============================================================================


class TinyAgentError(Exception):
    """Base exception for all tinyagent errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN",
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.recoverable = recoverable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
        }


class AgentErrorCode(str, Enum):
    """Stable codes attached to reasoning-loop failures."""

    MAX_ITERATIONS_EXCEEDED = "MAX_ITERATIONS_EXCEEDED"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    LLM_ERROR = "LLM_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    ABORTED = "ABORTED"
    UNKNOWN = "UNKNOWN"


class AgentError(TinyAgentError):
    """Reasoning-loop failure tagged with an AgentErrorCode."""

    def __init__(
        self,
        message: str,
        code: AgentErrorCode = AgentErrorCode.UNKNOWN,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        recoverable = code in (AgentErrorCode.LLM_ERROR, AgentErrorCode.TOOL_EXECUTION_FAILED)
        super().__init__(message, code=code.value, details=details, recoverable=recoverable)
        self.agent_code = code
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ToolExecutionError(AgentError):
    """A tool failed where the failure cannot be recovered into a record."""

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        details = {"tool": tool_name} if tool_name else None
        super().__init__(
            message,
            code=AgentErrorCode.TOOL_EXECUTION_FAILED,
            cause=cause,
            details=details,
        )
        self.tool_name = tool_name


class AbortedError(AgentError):
    """Raised when a cancellation token is observed as signaled."""

    def __init__(self, message: str = "Agent execution was aborted", reason: Optional[str] = None):
        details = {"reason": reason} if reason else None
        super().__init__(message, code=AgentErrorCode.ABORTED, details=details)
        self.reason = reason


class WorkflowConfigError(TinyAgentError):
    """Invalid workflow definition detected at construction time."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="WORKFLOW_CONFIG_ERROR", details=details)


class NodeExecutionError(TinyAgentError):
    """A workflow node body raised; wraps the original exception."""

    def __init__(self, node_name: str, cause: BaseException):
        message = f'Node "{node_name}" failed: {cause}'
        super().__init__(
            message,
            code="NODE_EXECUTION_ERROR",
            details={"node": node_name, "error_type": type(cause).__name__},
        )
        self.node_name = node_name
        self.cause = cause
        self.__cause__ = cause


class WorkflowExecutionError(TinyAgentError):
    """Runtime workflow failure not attributable to a single node body."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="WORKFLOW_EXECUTION_ERROR", details=details)


# ============================================================================
# Helpers
# ============================================================================


def wrap_error(error: BaseException, code: AgentErrorCode = AgentErrorCode.UNKNOWN) -> AgentError:
    """Wrap an arbitrary exception as an AgentError.

    An existing AgentError is returned unchanged so its original code survives
    re-wrapping at outer layers.
    """
    if isinstance(error, AgentError):
        return error
    message = str(error) or type(error).__name__
    return AgentError(message, code=code, cause=error)


def check_aborted(token: Optional["CancellationToken"]) -> None:
    """Raise AbortedError if the token has been signaled."""
    if token is not None and token.cancelled:
        raise AbortedError(reason=token.reason)


RETRYABLE_PATTERNS = [
    "network",
    "timeout",
    "rate limit",
    "429",
    "502",
    "503",
]


def is_retryable_error(error: BaseException) -> bool:
    """Classify if an error is worth retrying.

    Args:
        error: Exception to classify.

    Returns:
        True if retryable, False otherwise.
    """
    if isinstance(error, AbortedError):
        return False
    if isinstance(error, TinyAgentError):
        return error.recoverable

    error_str = str(error).lower()
    for pattern in RETRYABLE_PATTERNS:
        if pattern in error_str:
            logger.debug("error_classified_retryable", error=error_str, pattern=pattern)
            return True
    return False


# ============================================================================
# Retry with Jitter
# ============================================================================


class RetryConfig(BaseModel):
    """Configuration for retry behavior."""

    max_attempts: int = Field(default=3, ge=1, description="Maximum attempts including the first")
    base_delay_ms: int = Field(default=1000, ge=0, description="Base delay in milliseconds")
    max_delay_ms: int = Field(default=30000, ge=0, description="Maximum delay in milliseconds")
    exponential_base: float = Field(default=2.0, ge=1.0, description="Exponential backoff base")
    jitter: bool = Field(default=True, description="Add random jitter to delays")
    jitter_ratio: float = Field(default=0.1, ge=0.0, le=1.0, description="Jitter ratio (0-1)")


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate retry delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed).
        config: Retry configuration.

    Returns:
        Delay in seconds.
    """
    delay_ms = min(
        config.base_delay_ms * (config.exponential_base ** attempt),
        config.max_delay_ms,
    )

    if config.jitter:
        jitter_amount = delay_ms * config.jitter_ratio
        delay_ms += random.uniform(-jitter_amount, jitter_amount)

    return max(0, delay_ms) / 1000.0


def with_retry(
    config: Optional[RetryConfig] = None,
    should_retry: Callable[[BaseException], bool] = is_retryable_error,
):
    """Decorator adding retry with exponential backoff to a coroutine function.

    The engines never retry on their own; wrap a model adapter call or a tool
    body with this when transient failures are expected.

    Example:
        @with_retry(RetryConfig(max_attempts=5))
        async def call_provider():
            ...
    """
    retry_config = config or RetryConfig()

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError("with_retry requires a coroutine function")

        @wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(retry_config.max_attempts):
                try:
                    result = await func(*args, **kwargs)
                    if attempt > 0:
                        logger.info(
                            "retry_succeeded",
                            function=func.__name__,
                            attempt=attempt + 1,
                            total_attempts=retry_config.max_attempts,
                        )
                    return result
                except Exception as e:
                    retryable = should_retry(e)
                    if not retryable or attempt == retry_config.max_attempts - 1:
                        logger.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempt=attempt + 1,
                            error=str(e),
                            retryable=retryable,
                        )
                        raise

                    delay = calculate_delay(attempt, retry_config)
                    logger.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_attempts=retry_config.max_attempts,
                        delay_s=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry logic failed unexpectedly")

        return wrapper

    return decorator

"""
Error Handling Module for the usage dashboard.
Provides the exception hierarchy shared by the fetch, report and export
layers, a retrying decorator for upstream API calls and a decorator for
structured error handling in report phases.

The aggregation engine raises none of these: bad records are skipped there.
"""

import time
import logging
import functools
from typing import TypeVar, Callable, Any

import requests

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class PipelinePhaseError(Exception):
    """Base exception for report phase errors."""

    def __init__(self, message: str, phase: str = "", details: dict | None = None):
        self.phase = phase
        self.details = details or {}
        super().__init__(message)


class DataValidationError(PipelinePhaseError):
    """Raised when request parameters or report inputs fail validation."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, phase="VALIDATION", details=details)


class DateRangeError(DataValidationError):
    """Raised when a date range preset cannot be resolved to a valid window."""


class ExportError(PipelinePhaseError):
    """Raised when writing a report (CSV, Excel, HTML) fails."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, phase="EXPORT", details=details)


class ConfigurationError(Exception):
    """Raised when required configuration (e.g. the API token) is missing."""


class APIError(Exception):
    """Base exception for usage API errors."""

    def __init__(self, message: str, status_code: int | str | None = None, endpoint: str = ""):
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class AuthenticationError(APIError):
    """Raised when API authentication fails (401/403)."""


class RateLimitError(APIError):
    """Raised when API rate limit is still exceeded after retries (429)."""


class ServerError(APIError):
    """Raised for server-side errors (5xx) after retries."""


def _backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


def handle_api_errors(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retryable_status_codes: tuple[int, ...] = (429, 500, 502, 503, 504),
) -> Callable[[F], F]:
    """
    Decorator for consistent API error handling with retry logic.

    The wrapped function is expected to call ``response.raise_for_status()``
    so HTTP failures arrive as ``requests.exceptions.HTTPError``. If it is
    called with an ``endpoint`` keyword, that value is attached to raised errors.

    Args:
        max_retries: Maximum number of attempts for retryable errors.
        base_delay: Initial delay in seconds between retries (exponential backoff).
        max_delay: Maximum delay in seconds between retries.
        retryable_status_codes: HTTP status codes that should trigger a retry.

    Returns:
        Decorated function with error handling and retry logic.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            func_name = func.__name__
            endpoint = kwargs.get("endpoint", "")
            last_exception: Exception | None = None

            for attempt in range(1, max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except requests.exceptions.HTTPError as exc:
                    response = exc.response
                    status_code = response.status_code if response is not None else None

                    if status_code in (401, 403):
                        logger.error(
                            "[%s] Authentication error (HTTP %s) calling %s",
                            func_name,
                            status_code,
                            endpoint or "upstream API",
                        )
                        raise AuthenticationError(
                            f"Authentication failed: HTTP {status_code}",
                            status_code=status_code,
                            endpoint=endpoint,
                        ) from exc

                    if status_code is not None and status_code in retryable_status_codes:
                        last_exception = exc
                        if attempt < max_retries:
                            delay = _backoff_delay(attempt, base_delay, max_delay)
                            logger.warning(
                                "[%s] Retryable HTTP %s on attempt %d/%d. Retrying in %.1fs...",
                                func_name,
                                status_code,
                                attempt,
                                max_retries,
                                delay,
                            )
                            time.sleep(delay)
                            continue
                        error_cls = RateLimitError if status_code == 429 else ServerError
                        raise error_cls(
                            f"Upstream error after {max_retries} attempts: HTTP {status_code}",
                            status_code=status_code,
                            endpoint=endpoint,
                        ) from exc

                    logger.error(
                        "[%s] Non-retryable HTTP %s calling %s",
                        func_name,
                        status_code,
                        endpoint or "upstream API",
                    )
                    raise APIError(
                        f"HTTP error: {status_code}",
                        status_code=status_code,
                        endpoint=endpoint,
                    ) from exc

                except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                    is_timeout = isinstance(exc, requests.exceptions.Timeout)
                    label = "Request timeout" if is_timeout else "Connection error"
                    last_exception = exc
                    if attempt < max_retries:
                        delay = _backoff_delay(attempt, base_delay, max_delay)
                        logger.warning(
                            "[%s] %s on attempt %d/%d. Retrying in %.1fs...",
                            func_name,
                            label,
                            attempt,
                            max_retries,
                            delay,
                        )
                        time.sleep(delay)
                        continue
                    raise APIError(
                        f"{label} after {max_retries} attempts: {exc}",
                        status_code="TIMEOUT" if is_timeout else "CONNECTION_ERROR",
                        endpoint=endpoint,
                    ) from exc

                except APIError:
                    raise

                except ValueError as exc:
                    logger.error("[%s] Invalid response from %s: %s", func_name, endpoint, exc)
                    raise APIError(
                        f"Invalid response from upstream API: {exc}",
                        status_code="INVALID_RESPONSE",
                        endpoint=endpoint,
                    ) from exc

            raise APIError(
                f"{func_name} failed after {max_retries} attempts",
                endpoint=endpoint,
            ) from last_exception

        return wrapper  # type: ignore[return-value]

    return decorator


def handle_pipeline_phase(
    phase_name: str,
    error_cls: type[PipelinePhaseError] = PipelinePhaseError,
) -> Callable[[F], F]:
    """
    Decorator for structured error handling in report phases.

    Any unhandled exception is logged with phase context and re-raised as
    ``error_cls``. PipelinePhaseError instances pass through unchanged.

    Args:
        phase_name: Human-readable name of the phase, used as log prefix.
        error_cls: Exception class to raise on failure.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            func_name = func.__name__
            logger.info("[%s] Starting '%s'", phase_name, func_name)
            try:
                result = func(*args, **kwargs)
            except PipelinePhaseError:
                raise
            except Exception as exc:
                logger.error(
                    "[%s] Error in '%s': %s",
                    phase_name,
                    func_name,
                    exc,
                    exc_info=True,
                )
                raise error_cls(
                    f"{phase_name} failed in {func_name}: {exc}",
                    details={"function": func_name, "original_error": str(exc)},
                ) from exc
            logger.info("[%s] Completed '%s'", phase_name, func_name)
            return result

        return wrapper  # type: ignore[return-value]

    return decorator

"""Retry policy shared by the transport pipeline and async operations.

Decides per failure whether a retry is allowed and computes the exponential
backoff delay. Stateless; one instance may be injected into both retry
layers.
"""

from typing import Optional

from .error_normalizer import EnhancedError, TRANSIENT_ERROR_CODES

DEFAULT_MAX_RETRIES = 2
DEFAULT_BASE_DELAY_MS = 1000


class RetryPolicy:
    """Bounded retry with exponential backoff and no jitter.

    Backoff: delay = base_delay_ms * 2 ** attempt
    - Attempt 0: 1000ms
    - Attempt 1: 2000ms
    - Attempt 2: 4000ms

    The delay is not capped; base_delay_ms and max_retries are the tuning
    parameters.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must not be negative. Got: {max_retries}")
        if base_delay_ms < 0:
            raise ValueError(
                f"base_delay_ms must not be negative. Got: {base_delay_ms}"
            )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms

    def is_retryable(self, error: EnhancedError) -> bool:
        """Transient failures only: network, no response, timeout, or 5xx."""
        if error.error_code in TRANSIENT_ERROR_CODES:
            return True
        return error.status_code is not None and error.status_code >= 500

    def should_retry(
        self,
        error: EnhancedError,
        attempt: int,
        max_attempts: Optional[int] = None,
    ) -> bool:
        """Determine whether a failed attempt may be retried.

        Args:
            error: Normalized failure
            attempt: Number of retries already performed
            max_attempts: Retry bound, defaults to max_retries

        Returns:
            True if the error is retryable and the bound is not reached
        """
        limit = self.max_retries if max_attempts is None else max_attempts
        if attempt >= limit:
            return False
        return self.is_retryable(error)

    def delay_for(self, attempt: int, base_delay_ms: Optional[int] = None) -> int:
        """Backoff delay in milliseconds before retry number attempt + 1."""
        base = self.base_delay_ms if base_delay_ms is None else base_delay_ms
        return int(base * (2**attempt))

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_retries={self.max_retries}, "
            f"base_delay_ms={self.base_delay_ms})"
        )

"""Async Operation Controller.

Wraps one declarative "fetch and track" operation and exposes its state
(data, loading, error, retry_count, is_retrying). Adds an operation-level
retry loop on top of the transport pipeline's own retries.

State machine:
    idle -> loading -> success -> idle with data
                    -> error   -> idle with error (terminal)
                               -> retrying -> loading -> ...

Each execute() call takes a new generation number; a completion whose
generation is no longer current is discarded, so a superseded request can
never overwrite fresher state.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Tuple, TypeVar

from ..api_clients.error_normalizer import EnhancedError, normalize_error
from ..api_clients.retry_policy import RetryPolicy
from ..config import DashboardConfig
from ..scheduling import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "none": None,
}


@dataclass(frozen=True)
class OperationState(Generic[T]):
    """Snapshot of an AsyncOperation's observable state."""

    data: Optional[T] = None
    loading: bool = False
    error: Optional[EnhancedError] = None
    retry_count: int = 0
    is_retrying: bool = False


class AsyncOperation(Generic[T]):
    """Reusable state machine around one async operation.

    execute() never raises: failures are normalized into EnhancedError and
    exposed through the error attribute once they become terminal. Task
    cancellation still propagates, after loading is cleared.

    retry_count counts operation-level re-invocations only. Retries done
    inside the transport pipeline for a single invocation are not included.
    """

    def __init__(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        immediate: bool = False,
        on_success: Optional[Callable[[T], Any]] = None,
        on_error: Optional[Callable[[EnhancedError], Any]] = None,
        auto_retry: bool = True,
        max_retries: int = 2,
        retry_delay_ms: int = 2000,
        retry_policy: Optional[RetryPolicy] = None,
        scheduler: Optional[Scheduler] = None,
        dependencies: Tuple[Any, ...] = (),
        error_log_level: str = "error",
    ):
        """Initialize the operation controller.

        Args:
            operation: Zero-argument coroutine function to run
            immediate: Schedule execute() right away (needs a running loop
                when the default scheduler is used)
            on_success: Called once per successful completion
            on_error: Called once per terminal failure
            auto_retry: Retry transient failures at this layer
            max_retries: Operation-level retry bound
            retry_delay_ms: Base delay for exponential backoff
            retry_policy: Policy deciding retry eligibility, may be shared
                with the transport pipeline
            scheduler: Timer scheduler for retries
            dependencies: Initial dependency values, see set_dependencies()
            error_log_level: "error", "warning", "info" or "none"
        """
        if error_log_level not in ERROR_LOG_LEVELS:
            raise ValueError(
                f"error_log_level must be one of {list(ERROR_LOG_LEVELS)}. "
                f"Got: {error_log_level}"
            )
        if max_retries < 0:
            raise ValueError(f"max_retries must not be negative. Got: {max_retries}")

        self._operation = operation
        self._on_success = on_success
        self._on_error = on_error
        self.auto_retry = auto_retry
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=max_retries, base_delay_ms=retry_delay_ms
        )
        self._scheduler = scheduler
        self._log_level = ERROR_LOG_LEVELS[error_log_level]
        self._dependencies = tuple(dependencies)

        self._data: Optional[T] = None
        self._loading = False
        self._error: Optional[EnhancedError] = None
        self._last_error: Optional[EnhancedError] = None
        self._retry_count = 0
        self._is_retrying = False
        self._generation = 0
        self._disposed = False
        self._retry_handle: Optional[TimerHandle] = None
        self._pending_handle: Optional[TimerHandle] = None

        if immediate:
            self._pending_handle = self.scheduler.call_later(0, self._run_scheduled)

    @classmethod
    def from_config(
        cls,
        operation: Callable[[], Awaitable[T]],
        config: DashboardConfig,
        **kwargs: Any,
    ) -> "AsyncOperation[T]":
        """Build an operation using the configured operation-level retry settings.

        Keyword arguments are passed through and override the configured values.
        """
        kwargs.setdefault("max_retries", config.retry.operation_max_retries)
        kwargs.setdefault("retry_delay_ms", config.retry.operation_retry_delay_ms)
        return cls(operation, **kwargs)

    @property
    def scheduler(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = AsyncioScheduler()
        return self._scheduler

    @property
    def state(self) -> OperationState[T]:
        return OperationState(
            data=self._data,
            loading=self._loading,
            error=self._error,
            retry_count=self._retry_count,
            is_retrying=self._is_retrying,
        )

    @property
    def data(self) -> Optional[T]:
        return self._data

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[EnhancedError]:
        """Terminal error; None while a retry is still pending."""
        return self._error

    @property
    def last_error(self) -> Optional[EnhancedError]:
        """Most recent failure, including ones that are being retried."""
        return self._last_error

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def is_retrying(self) -> bool:
        return self._is_retrying

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def execute(self, force: bool = False) -> Optional[T]:
        """Run the operation and update state.

        Args:
            force: Run even if an invocation is already in flight. The
                in-flight one is not cancelled; its result is discarded.

        Returns:
            The operation result on success, None on failure, skip or
            superseded completion
        """
        if self._disposed:
            logger.debug("execute() called on a disposed operation, ignoring")
            return None
        if self._loading and not force:
            logger.debug("Operation already loading, skipping execute()")
            return None

        self._cancel_timers()
        self._generation += 1
        generation = self._generation
        self._loading = True
        if not self._is_retrying:
            self._error = None
            self._retry_count = 0

        try:
            result = await self._operation()
        except asyncio.CancelledError:
            if generation == self._generation:
                self._loading = False
                self._is_retrying = False
            raise
        except Exception as e:
            if generation != self._generation:
                logger.debug(f"Discarding failure from superseded generation {generation}")
                return None
            self._handle_failure(normalize_error(e))
            return None

        if generation != self._generation:
            logger.debug(f"Discarding result from superseded generation {generation}")
            return None

        self._data = result
        self._error = None
        self._last_error = None
        self._retry_count = 0
        self._is_retrying = False
        self._loading = False
        self._notify(self._on_success, result)
        return result

    def _handle_failure(self, error: EnhancedError) -> None:
        self._last_error = error
        if self._log_level is not None:
            logger.log(
                self._log_level,
                f"Operation failed with {error.error_code}: {error.message}",
            )

        if self.auto_retry and self._retry_policy.should_retry(
            error, self._retry_count, self.max_retries
        ):
            delay_ms = self._retry_policy.delay_for(
                self._retry_count, self.retry_delay_ms
            )
            self._retry_count += 1
            self._is_retrying = True
            logger.info(
                f"Auto-retrying operation in {delay_ms}ms "
                f"({self._retry_count}/{self.max_retries})"
            )
            self._retry_handle = self.scheduler.call_later(delay_ms, self._run_retry)
            return

        self._error = error
        self._loading = False
        self._is_retrying = False
        self._notify(self._on_error, error)

    def _run_retry(self) -> Awaitable[Optional[T]]:
        self._retry_handle = None
        return self.execute(force=True)

    def _run_scheduled(self) -> Awaitable[Optional[T]]:
        self._pending_handle = None
        return self.execute()

    def _notify(self, callback: Optional[Callable[[Any], Any]], value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception as e:
            logger.error(f"Operation callback {callback!r} raised: {e}")

    def _cancel_timers(self) -> None:
        for handle in (self._retry_handle, self._pending_handle):
            if handle is not None:
                handle.cancel()
        self._retry_handle = None
        self._pending_handle = None

    def reset(self) -> None:
        """Return to the initial idle state.

        Cancels a pending retry and invalidates any in-flight invocation so
        results for a superseded parameter set are never shown.
        """
        self._cancel_timers()
        self._generation += 1
        self._data = None
        self._loading = False
        self._error = None
        self._last_error = None
        self._retry_count = 0
        self._is_retrying = False

    def set_dependencies(self, *dependencies: Any, refresh: bool = False) -> bool:
        """Declare the values the operation depends on.

        Resets state when the values differ from the previous call.

        Args:
            *dependencies: Current dependency values (compared by equality)
            refresh: Schedule a fresh execute() after a reset

        Returns:
            True if the dependencies changed and state was reset
        """
        if dependencies == self._dependencies:
            return False

        self._dependencies = dependencies
        self.reset()
        if refresh and not self._disposed:
            self._pending_handle = self.scheduler.call_later(0, self._run_scheduled)
        return True

    def dispose(self) -> None:
        """Cancel timers and ignore every later completion."""
        self._cancel_timers()
        self._generation += 1
        self._disposed = True
        self._loading = False
        self._is_retrying = False

    async def __aenter__(self) -> "AsyncOperation[T]":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

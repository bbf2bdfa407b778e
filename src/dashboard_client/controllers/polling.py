"""Polling update channel.

Periodically asks an UpdateSource which data categories changed and
delivers typed UpdateEvents to subscribers. Each subscription owns one
fixed-rate timer and its own per-category watermarks, so one subscriber
never consumes news meant for another. Subscriptions can be paused,
resumed and re-timed; every timer is cancelled on unsubscribe().
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Set

from ..api_clients import endpoints
from ..api_clients.base_client import DashboardAPIClient
from ..api_clients.error_normalizer import (
    DashboardAPIError,
    EnhancedError,
    normalize_error,
)
from ..api_clients.request_params import utc_timestamp
from ..config import DEFAULT_POLLING_INTERVAL_MS, DashboardConfig
from ..scheduling import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class UpdateType(str, Enum):
    """Data categories a subscriber can ask to be notified about."""

    EVENTS = "events"
    SECURITY_ALERTS = "security_alerts"
    PERFORMANCE_METRICS = "performance_metrics"
    AGENTS = "agents"
    ALL = "all"


@dataclass(frozen=True)
class UpdateEvent:
    type: UpdateType
    timestamp: str
    data: Any


UpdateCallback = Callable[[UpdateEvent], Any]
ErrorCallback = Callable[[EnhancedError], Any]
Watermarks = Dict[UpdateType, datetime]


class UpdateSource(ABC):
    """Reports which categories have data newer than a set of watermarks.

    Sources hold no per-consumer state: the watermarks belong to the caller
    and are passed in on every poll.
    """

    @property
    @abstractmethod
    def categories(self) -> FrozenSet[UpdateType]:
        """Concrete categories this source can check (never ALL)."""
        pass

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def initial_watermarks(self, categories: Iterable[UpdateType]) -> Watermarks:
        started = self.now()
        return {update_type: started for update_type in categories}

    @abstractmethod
    async def fetch_updates(self, watermarks: Watermarks) -> Dict[UpdateType, Any]:
        """Check the categories keyed in watermarks for newer data.

        Advances, in place, the watermark of every category it reports.

        Args:
            watermarks: Category -> time of the last reported change

        Returns:
            New data keyed by category; categories without news are omitted
        """
        pass


DEFAULT_UPDATE_ENDPOINTS: Dict[UpdateType, str] = {
    UpdateType.EVENTS: endpoints.TELEMETRY_EVENTS,
    UpdateType.SECURITY_ALERTS: endpoints.ALERTS,
    UpdateType.PERFORMANCE_METRICS: endpoints.PERFORMANCE_METRICS,
    UpdateType.AGENTS: endpoints.AGENTS,
}


class ApiUpdateSource(UpdateSource):
    """Detects new data by polling each requested category's list endpoint.

    A poll asks for items newer than the category's watermark; when any
    come back the category is reported and its watermark moves to the time
    of that poll. A failing category is logged and skipped for this round.
    When every checked category fails the first failure is raised, so the
    channel can report the backend as unreachable.
    """

    def __init__(
        self,
        client: DashboardAPIClient,
        endpoints: Optional[Dict[UpdateType, str]] = None,
        page_size: int = 100,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.endpoints = dict(endpoints or DEFAULT_UPDATE_ENDPOINTS)
        self.endpoints.pop(UpdateType.ALL, None)
        self.page_size = page_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(
        cls,
        client: DashboardAPIClient,
        config: DashboardConfig,
        endpoints: Optional[Dict[UpdateType, str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "ApiUpdateSource":
        """Build a source using the configured polling page size."""
        return cls(
            client,
            endpoints=endpoints,
            page_size=config.polling.page_size,
            clock=clock,
        )

    @property
    def categories(self) -> FrozenSet[UpdateType]:
        return frozenset(self.endpoints)

    def now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _extract_items(payload: Any) -> List[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and isinstance(payload.get("items"), list):
            return payload["items"]
        return []

    async def fetch_updates(self, watermarks: Watermarks) -> Dict[UpdateType, Any]:
        updates: Dict[UpdateType, Any] = {}
        failures: List[DashboardAPIError] = []
        checked = 0

        for update_type, since in list(watermarks.items()):
            path = self.endpoints.get(update_type)
            if path is None:
                continue
            checked += 1
            polled_at = self.now()
            params = {"from_time": since, "page_size": self.page_size}
            try:
                payload = await self.client.get_json(path, params=params)
            except DashboardAPIError as e:
                logger.warning(
                    f"Update check for {update_type.value} failed: {e.error.message}"
                )
                failures.append(e)
                continue

            items = self._extract_items(payload)
            if items:
                updates[update_type] = items
                watermarks[update_type] = polled_at
                logger.debug(f"{len(items)} new {update_type.value} item(s)")

        if checked and len(failures) == checked:
            raise failures[0]
        return updates


class Subscription:
    """Handle returned by PollingUpdateChannel.subscribe()."""

    def __init__(
        self,
        channel: "PollingUpdateChannel",
        on_update: UpdateCallback,
        update_types: FrozenSet[UpdateType],
        interval_ms: int,
        watermarks: Watermarks,
        on_error: Optional[ErrorCallback] = None,
    ):
        self._channel = channel
        self.on_update = on_update
        self.on_error = on_error
        self.update_types = update_types
        self.watermarks = watermarks
        self._interval_ms = interval_ms
        self._handle: Optional[TimerHandle] = None
        self._active = True
        self._paused = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def polling(self) -> bool:
        return self._active and not self._paused

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def wants(self, update_type: UpdateType) -> bool:
        return UpdateType.ALL in self.update_types or update_type in self.update_types

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def pause(self) -> None:
        """Stop polling without ending the subscription.

        Watermarks are kept, so changes made while paused are delivered on
        the first tick after resume().
        """
        if not self.polling:
            return
        self._paused = True
        self._cancel_timer()
        logger.debug(f"Paused update polling for {self._describe()}")

    def resume(self) -> None:
        if not self._active or not self._paused:
            return
        self._paused = False
        self._channel._arm(self)
        logger.debug(f"Resumed update polling for {self._describe()}")

    def set_interval(self, interval_ms: int) -> None:
        """Change the polling interval, re-arming a running timer."""
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive. Got: {interval_ms}")
        self._interval_ms = interval_ms
        if self.polling:
            self._cancel_timer()
            self._channel._arm(self)

    def unsubscribe(self) -> None:
        """Stop the timer. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._cancel_timer()
        self._channel._discard(self)

    def _describe(self) -> str:
        return f"{sorted(t.value for t in self.update_types)} every {self._interval_ms}ms"


class PollingUpdateChannel:
    """Delivers UpdateEvents to subscribers on a fixed polling interval."""

    def __init__(
        self,
        source: UpdateSource,
        scheduler: Optional[Scheduler] = None,
        default_interval_ms: int = DEFAULT_POLLING_INTERVAL_MS,
    ):
        if default_interval_ms <= 0:
            raise ValueError(
                f"default_interval_ms must be positive. Got: {default_interval_ms}"
            )
        self.source = source
        self.scheduler = scheduler or AsyncioScheduler()
        self.default_interval_ms = default_interval_ms
        self._subscriptions: Set[Subscription] = set()

    @classmethod
    def from_config(
        cls,
        source: UpdateSource,
        config: DashboardConfig,
        scheduler: Optional[Scheduler] = None,
    ) -> "PollingUpdateChannel":
        """Build a channel using the configured default polling interval."""
        return cls(
            source,
            scheduler=scheduler,
            default_interval_ms=config.polling.interval_ms,
        )

    @property
    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions)

    @property
    def is_polling(self) -> bool:
        """True while at least one subscription is actively polling."""
        return any(subscription.polling for subscription in self._subscriptions)

    def subscribe(
        self,
        on_update: UpdateCallback,
        update_types: Iterable[UpdateType] = (UpdateType.ALL,),
        interval_ms: Optional[int] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """Start polling for the given categories.

        Args:
            on_update: Called synchronously with each UpdateEvent
            update_types: Categories of interest; UpdateType.ALL matches all
            interval_ms: Polling interval, defaults to the channel's
            on_error: Called with the normalized error when a poll fails

        Returns:
            Subscription whose unsubscribe() stops the polling
        """
        types = frozenset(UpdateType(t) for t in update_types)
        if not types:
            raise ValueError("update_types must not be empty")
        interval = self.default_interval_ms if interval_ms is None else interval_ms
        if interval <= 0:
            raise ValueError(f"interval_ms must be positive. Got: {interval}")

        available = self.source.categories
        if UpdateType.ALL in types:
            categories = available
        else:
            categories = types & available
            for missing in sorted(t.value for t in types - available):
                logger.warning(f"Update source does not provide {missing} updates")

        subscription = Subscription(
            self,
            on_update,
            types,
            interval,
            self.source.initial_watermarks(categories),
            on_error=on_error,
        )
        self._subscriptions.add(subscription)
        self._arm(subscription)
        logger.debug(f"Subscribed to {subscription._describe()}")
        return subscription

    def _arm(self, subscription: Subscription) -> None:
        subscription._handle = self.scheduler.call_every(
            subscription.interval_ms, lambda: self._tick(subscription)
        )

    async def _tick(self, subscription: Subscription) -> None:
        if not subscription.polling or not subscription.watermarks:
            return
        try:
            updates = await self.source.fetch_updates(subscription.watermarks)
        except Exception as e:
            error = normalize_error(e)
            logger.error(f"Polling for updates failed: {error.message}")
            if subscription.active and subscription.on_error is not None:
                try:
                    subscription.on_error(error)
                except Exception as callback_error:
                    logger.error(f"Update error listener raised: {callback_error}")
            return

        for update_type, data in updates.items():
            if not subscription.active:
                return
            if not subscription.wants(update_type):
                continue
            event = UpdateEvent(type=update_type, timestamp=utc_timestamp(), data=data)
            try:
                subscription.on_update(event)
            except Exception as e:
                logger.error(f"Update subscriber raised for {update_type.value}: {e}")

    def _discard(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

    def close(self) -> None:
        """Unsubscribe every subscriber."""
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()

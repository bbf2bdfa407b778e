"""Tests for the polling update channel and API update source."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from dashboard_client.api_clients.error_normalizer import DashboardAPIError
from dashboard_client.config import DashboardConfig, PollingConfig
from dashboard_client.controllers.polling import (
    ApiUpdateSource,
    PollingUpdateChannel,
    UpdateEvent,
    UpdateSource,
    UpdateType,
)

ALL_CATEGORIES = frozenset(
    {
        UpdateType.EVENTS,
        UpdateType.SECURITY_ALERTS,
        UpdateType.PERFORMANCE_METRICS,
        UpdateType.AGENTS,
    }
)


class StaticSource(UpdateSource):
    """Source reporting the same data for every requested category on each poll."""

    def __init__(self, updates, categories=ALL_CATEGORIES):
        self.updates = updates
        self._categories = frozenset(categories)
        self.requested = []

    @property
    def categories(self):
        return self._categories

    async def fetch_updates(self, watermarks):
        self.requested.append(frozenset(watermarks))
        return {t: data for t, data in self.updates.items() if t in watermarks}


class OneShotSource(UpdateSource):
    """Source whose pending news is consumed by whoever checks the category first."""

    def __init__(self, pending):
        self.pending = dict(pending)

    @property
    def categories(self):
        return ALL_CATEGORIES

    async def fetch_updates(self, watermarks):
        updates = {}
        for update_type in list(watermarks):
            if update_type in self.pending:
                updates[update_type] = self.pending.pop(update_type)
                watermarks[update_type] = self.now()
        return updates


class TestPollingUpdateChannel:
    @pytest.mark.asyncio
    async def test_delivers_matching_types_each_interval(self, virtual_scheduler):
        source = StaticSource(
            {UpdateType.SECURITY_ALERTS: ["alert"], UpdateType.EVENTS: ["event"]}
        )
        channel = PollingUpdateChannel(source, scheduler=virtual_scheduler)
        received = []

        channel.subscribe(
            received.append, update_types=[UpdateType.SECURITY_ALERTS], interval_ms=1000
        )
        await virtual_scheduler.advance(999)
        assert received == []

        await virtual_scheduler.advance(2001)

        assert len(source.requested) == 3
        assert [event.type for event in received] == [UpdateType.SECURITY_ALERTS] * 3
        assert all(isinstance(event, UpdateEvent) for event in received)
        assert received[0].data == ["alert"]
        assert received[0].timestamp.endswith("Z")

    @pytest.mark.asyncio
    async def test_only_requested_categories_are_polled(self, virtual_scheduler):
        source = StaticSource({})
        channel = PollingUpdateChannel(source, scheduler=virtual_scheduler)

        channel.subscribe(Mock(), update_types=[UpdateType.EVENTS], interval_ms=1000)
        await virtual_scheduler.advance(1000)

        assert source.requested == [frozenset({UpdateType.EVENTS})]

    @pytest.mark.asyncio
    async def test_each_subscriber_receives_its_own_news(self, virtual_scheduler):
        source = OneShotSource({UpdateType.SECURITY_ALERTS: ["new alert"]})
        channel = PollingUpdateChannel(source, scheduler=virtual_scheduler)
        events_received = []
        alerts_received = []

        channel.subscribe(
            events_received.append, update_types=[UpdateType.EVENTS], interval_ms=1000
        )
        channel.subscribe(
            alerts_received.append,
            update_types=[UpdateType.SECURITY_ALERTS],
            interval_ms=1000,
        )
        await virtual_scheduler.advance(3000)

        assert events_received == []
        assert [event.data for event in alerts_received] == [["new alert"]]

    @pytest.mark.asyncio
    async def test_all_matches_every_category(self, virtual_scheduler):
        source = StaticSource(
            {UpdateType.AGENTS: [1], UpdateType.PERFORMANCE_METRICS: [2]}
        )
        channel = PollingUpdateChannel(
            source, scheduler=virtual_scheduler, default_interval_ms=5000
        )
        on_update = Mock()

        channel.subscribe(on_update)
        await virtual_scheduler.advance(5000)

        assert virtual_scheduler.intervals == [5000]
        assert source.requested == [ALL_CATEGORIES]
        types = {call.args[0].type for call in on_update.call_args_list}
        assert types == {UpdateType.AGENTS, UpdateType.PERFORMANCE_METRICS}

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, virtual_scheduler):
        source = StaticSource({UpdateType.EVENTS: ["e"]})
        channel = PollingUpdateChannel(source, scheduler=virtual_scheduler)
        on_update = Mock()

        subscription = channel.subscribe(on_update, interval_ms=1000)
        await virtual_scheduler.advance(1000)
        subscription.unsubscribe()
        subscription.unsubscribe()
        await virtual_scheduler.advance(10_000)

        assert on_update.call_count == 1
        assert subscription.active is False
        assert channel.subscriptions == []
        assert channel.is_polling is False

    @pytest.mark.asyncio
    async def test_source_failure_keeps_polling_and_reports_error(
        self, virtual_scheduler
    ):
        source = StaticSource({})
        source.fetch_updates = AsyncMock(
            side_effect=[httpx.ConnectError("refused"), {UpdateType.EVENTS: ["e"]}]
        )
        channel = PollingUpdateChannel(source, scheduler=virtual_scheduler)
        on_update = Mock()
        on_error = Mock()

        channel.subscribe(on_update, interval_ms=1000, on_error=on_error)
        await virtual_scheduler.advance(2000)

        assert source.fetch_updates.await_count == 2
        on_update.assert_called_once()
        on_error.assert_called_once()
        assert on_error.call_args.args[0].error_code == "NETWORK_ERROR"

    @pytest.mark.asyncio
    async def test_callback_failure_keeps_polling(self, virtual_scheduler):
        source = StaticSource({UpdateType.EVENTS: ["e"]})
        channel = PollingUpdateChannel(source, scheduler=virtual_scheduler)
        on_update = Mock(side_effect=RuntimeError("ui bug"))

        channel.subscribe(on_update, interval_ms=1000)
        await virtual_scheduler.advance(3000)

        assert on_update.call_count == 3

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, virtual_scheduler):
        source = StaticSource({UpdateType.EVENTS: ["e"]})
        channel = PollingUpdateChannel(source, scheduler=virtual_scheduler)
        on_update = Mock()

        subscription = channel.subscribe(on_update, interval_ms=1000)
        await virtual_scheduler.advance(1000)
        subscription.pause()
        await virtual_scheduler.advance(5000)

        assert on_update.call_count == 1
        assert subscription.paused is True
        assert subscription.active is True
        assert channel.is_polling is False

        subscription.resume()
        await virtual_scheduler.advance(1000)

        assert on_update.call_count == 2
        assert channel.is_polling is True

    @pytest.mark.asyncio
    async def test_set_interval_rearms_timer(self, virtual_scheduler):
        source = StaticSource({UpdateType.EVENTS: ["e"]})
        channel = PollingUpdateChannel(source, scheduler=virtual_scheduler)
        on_update = Mock()

        subscription = channel.subscribe(on_update, interval_ms=1000)
        subscription.set_interval(4000)
        await virtual_scheduler.advance(3999)

        assert on_update.call_count == 0

        await virtual_scheduler.advance(1)

        assert on_update.call_count == 1
        assert subscription.interval_ms == 4000
        assert virtual_scheduler.intervals == [1000, 4000]

    @pytest.mark.asyncio
    async def test_set_interval_while_paused_applies_on_resume(self, virtual_scheduler):
        channel = PollingUpdateChannel(StaticSource({}), scheduler=virtual_scheduler)
        subscription = channel.subscribe(Mock(), interval_ms=1000)

        subscription.pause()
        subscription.set_interval(2000)
        assert virtual_scheduler.pending == []

        subscription.resume()

        assert virtual_scheduler.intervals == [1000, 2000]

    @pytest.mark.asyncio
    async def test_close_ends_all_subscriptions(self, virtual_scheduler):
        channel = PollingUpdateChannel(StaticSource({}), scheduler=virtual_scheduler)
        first = channel.subscribe(Mock())
        second = channel.subscribe(Mock(), interval_ms=2000)

        channel.close()

        assert not first.active
        assert not second.active
        assert virtual_scheduler.pending == []

    def test_invalid_interval_rejected(self, virtual_scheduler):
        channel = PollingUpdateChannel(StaticSource({}), scheduler=virtual_scheduler)

        with pytest.raises(ValueError):
            channel.subscribe(Mock(), interval_ms=0)

    def test_empty_update_types_rejected(self, virtual_scheduler):
        channel = PollingUpdateChannel(StaticSource({}), scheduler=virtual_scheduler)

        with pytest.raises(ValueError):
            channel.subscribe(Mock(), update_types=[])

    def test_from_config_uses_polling_interval(self, virtual_scheduler):
        config = DashboardConfig(polling=PollingConfig(interval_ms=15000))

        channel = PollingUpdateChannel.from_config(
            StaticSource({}), config, scheduler=virtual_scheduler
        )

        assert channel.default_interval_ms == 15000


class TestApiUpdateSource:
    START = datetime(2024, 1, 1, tzinfo=timezone.utc)

    @pytest.fixture
    def clock(self):
        times = [self.START + timedelta(seconds=n) for n in range(100)]
        return Mock(side_effect=times)

    @pytest.mark.asyncio
    async def test_reports_categories_with_new_items(self, make_client, clock):
        def handler(request):
            if request.url.path == "/v1/alerts/":
                return httpx.Response(200, json={"items": [{"id": 1}], "total": 1})
            return httpx.Response(200, json={"items": [], "total": 0})

        client = make_client(handler)
        source = ApiUpdateSource(client, clock=clock)
        watermarks = source.initial_watermarks(source.categories)

        updates = await source.fetch_updates(watermarks)

        assert updates == {UpdateType.SECURITY_ALERTS: [{"id": 1}]}
        alerts_request = next(
            r for r in client._transport.requests if r.url.path == "/v1/alerts/"
        )
        assert alerts_request.url.params["from_time"] == "2024-01-01T00:00:00.000Z"
        assert alerts_request.url.params["page_size"] == "100"
        assert watermarks[UpdateType.SECURITY_ALERTS] > self.START
        assert watermarks[UpdateType.EVENTS] == self.START
        await client.close()

    @pytest.mark.asyncio
    async def test_two_subscriptions_poll_only_their_categories(
        self, make_client, clock, virtual_scheduler
    ):
        client = make_client(lambda request: httpx.Response(200, json={"items": []}))
        channel = PollingUpdateChannel(
            ApiUpdateSource(client, clock=clock), scheduler=virtual_scheduler
        )

        channel.subscribe(Mock(), update_types=[UpdateType.EVENTS], interval_ms=1000)
        channel.subscribe(
            Mock(), update_types=[UpdateType.SECURITY_ALERTS], interval_ms=1000
        )
        await virtual_scheduler.advance(1000)

        paths = sorted(r.url.path for r in client._transport.requests)
        assert paths == ["/v1/alerts/", "/v1/telemetry/events/"]
        await client.close()

    @pytest.mark.asyncio
    async def test_failing_category_is_skipped(self, make_client, clock, no_sleep):
        def handler(request):
            if request.url.path == "/v1/agents/":
                return httpx.Response(500, json={"message": "db unavailable"})
            return httpx.Response(200, json=[{"id": "e"}])

        client = make_client(handler)
        source = ApiUpdateSource(client, clock=clock)
        watermarks = source.initial_watermarks(
            [UpdateType.AGENTS, UpdateType.EVENTS]
        )

        updates = await source.fetch_updates(watermarks)

        assert set(updates) == {UpdateType.EVENTS}
        assert watermarks[UpdateType.AGENTS] == self.START
        await client.close()

    @pytest.mark.asyncio
    async def test_all_categories_failing_raises(self, make_client, clock, no_sleep):
        client = make_client(
            lambda request: httpx.Response(503, json={"message": "maintenance"})
        )
        source = ApiUpdateSource(client, clock=clock)
        watermarks = source.initial_watermarks([UpdateType.EVENTS])

        with pytest.raises(DashboardAPIError) as exc_info:
            await source.fetch_updates(watermarks)

        assert exc_info.value.error_code == "HTTP_503"
        assert watermarks[UpdateType.EVENTS] == self.START
        await client.close()

    def test_from_config_uses_page_size(self, make_client):
        config = DashboardConfig(polling=PollingConfig(page_size=25))

        source = ApiUpdateSource.from_config(
            make_client(lambda request: httpx.Response(200)), config
        )

        assert source.page_size == 25
        assert source.categories == ALL_CATEGORIES

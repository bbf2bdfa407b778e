"""
Events API Client for the monitoring dashboard.

Reads telemetry events and traces through the shared transport pipeline.
"""

import logging
from typing import Any, Dict, List

from . import endpoints
from .base_client import DashboardAPIClient
from .models import PaginatedResponse, ResourceId, TelemetryEvent
from .request_params import parse_api_dates_list

logger = logging.getLogger(__name__)

EVENT_DATE_FIELDS = ("timestamp",)


class EventsAPIClient(DashboardAPIClient):
    """Client for telemetry event operations."""

    async def list_events(self, **filters: Any) -> PaginatedResponse:
        """List telemetry events.

        Args:
            **filters: Query filters (page, page_size, agent_id, event_type,
                level, from_time, to_time, sort_by, sort_order)

        Returns:
            Page of TelemetryEvent models

        Raises:
            DashboardAPIError: If the request fails
        """
        page = await self.get_paginated(
            endpoints.TELEMETRY_EVENTS, params=filters, date_fields=EVENT_DATE_FIELDS
        )
        events = [TelemetryEvent.model_validate(item) for item in page.items]
        return page.model_copy(update={"items": events})

    async def get_event(self, event_id: ResourceId) -> TelemetryEvent:
        """Get a single telemetry event by ID."""
        data = await self.get_item(
            endpoints.TELEMETRY_EVENTS, event_id, date_fields=EVENT_DATE_FIELDS
        )
        return TelemetryEvent.model_validate(data)

    async def get_trace(self, trace_id: str) -> List[TelemetryEvent]:
        """Get all events belonging to a trace, in server order."""
        path = f"{endpoints.TELEMETRY_TRACES}/{trace_id}"
        data = await self.get_json(path)
        if isinstance(data, dict):
            data = data.get("events", data.get("items"))
        if not isinstance(data, list):
            raise self._malformed(path, data, "a list of events")
        items: List[Dict[str, Any]] = parse_api_dates_list(data, EVENT_DATE_FIELDS)
        return [TelemetryEvent.model_validate(item) for item in items]

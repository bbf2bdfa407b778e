"""
Alerts API Client for the monitoring dashboard.

Lists, filters and reviews security alerts through the shared transport
pipeline.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from . import endpoints
from .base_client import DashboardAPIClient
from .models import Alert, PaginatedResponse, ResourceId

logger = logging.getLogger(__name__)

ALERT_DATE_FIELDS = ("timestamp", "reviewed_at")

TimeBound = Union[datetime, str]


class AlertsAPIClient(DashboardAPIClient):
    """Client for security alert operations."""

    def _to_alert_page(self, page: PaginatedResponse) -> PaginatedResponse:
        alerts = [Alert.model_validate(item) for item in page.items]
        return page.model_copy(update={"items": alerts})

    async def list_alerts(self, **filters: Any) -> PaginatedResponse:
        """List alerts with optional filtering.

        Args:
            **filters: Query filters (page, page_size, agent_id, severity,
                alert_type, start_time, end_time, reviewed, sort_by, sort_order)

        Returns:
            Page of Alert models

        Raises:
            DashboardAPIError: If the request fails
        """
        page = await self.get_paginated(
            endpoints.ALERTS, params=filters, date_fields=ALERT_DATE_FIELDS
        )
        return self._to_alert_page(page)

    async def get_alert(self, alert_id: ResourceId) -> Alert:
        """Get a single alert by ID."""
        data = await self.get_item(
            endpoints.ALERTS, alert_id, date_fields=ALERT_DATE_FIELDS
        )
        return Alert.model_validate(data)

    async def mark_as_reviewed(self, alert_id: ResourceId, reviewed_by: str) -> Alert:
        """Mark an alert as reviewed.

        Args:
            alert_id: Alert to update
            reviewed_by: Reviewer name

        Returns:
            The updated alert
        """
        data = await self.request_json(
            "PATCH",
            f"{endpoints.ALERTS}/{alert_id}",
            json={"reviewed": True, "reviewed_by": reviewed_by},
        )
        logger.info(f"Alert {alert_id} marked as reviewed by {reviewed_by}")
        return Alert.model_validate(data)

    async def get_alerts_by_agent(self, agent_id: str, **filters: Any) -> PaginatedResponse:
        return await self.list_alerts(**{**filters, "agent_id": agent_id})

    async def get_alerts_by_severity(self, severity: str, **filters: Any) -> PaginatedResponse:
        return await self.list_alerts(**{**filters, "severity": severity})

    async def get_critical_alerts(self, **filters: Any) -> PaginatedResponse:
        return await self.get_alerts_by_severity("critical", **filters)

    async def get_alerts_by_type(self, alert_type: str, **filters: Any) -> PaginatedResponse:
        return await self.list_alerts(**{**filters, "alert_type": alert_type})

    async def get_unreviewed_alerts(self, **filters: Any) -> PaginatedResponse:
        return await self.list_alerts(**{**filters, "reviewed": False})

    async def get_alerts_in_range(
        self, start_time: TimeBound, end_time: TimeBound, **filters: Any
    ) -> PaginatedResponse:
        """List alerts raised between start_time and end_time."""
        return await self.list_alerts(
            **{**filters, "start_time": start_time, "end_time": end_time}
        )

    async def get_alerts_overview(self, **params: Any) -> Dict[str, Any]:
        """Get aggregated alert counts for the overview widgets."""
        data = await self.get_json(endpoints.ALERTS_OVERVIEW, params=params or None)
        if not isinstance(data, dict):
            raise self._malformed(endpoints.ALERTS_OVERVIEW, data, "an object")
        return data

    async def count_alerts(self, time_range: Optional[str] = None) -> int:
        """Total number of alerts, optionally within a time range (e.g. 24h)."""
        page = await self.list_alerts(page=1, page_size=1, time_range=time_range)
        return page.total

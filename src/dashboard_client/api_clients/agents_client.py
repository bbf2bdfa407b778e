"""
Agents API Client for the monitoring dashboard.

Provides agent listing and detail lookups through the shared transport
pipeline.
"""

import logging
from typing import Any

from . import endpoints
from .base_client import DashboardAPIClient
from .models import Agent, PaginatedResponse

logger = logging.getLogger(__name__)

AGENT_DATE_FIELDS = ("last_active", "creation_time")
SESSION_DATE_FIELDS = ("start_time", "end_time")


class AgentsAPIClient(DashboardAPIClient):
    """Client for agent operations."""

    async def list_agents(self, **filters: Any) -> PaginatedResponse:
        """List registered agents.

        Args:
            **filters: Query filters (page, page_size, active, search,
                sort_by, sort_order)

        Returns:
            Page of Agent models

        Raises:
            DashboardAPIError: If the request fails
        """
        page = await self.get_paginated(
            endpoints.AGENTS, params=filters, date_fields=AGENT_DATE_FIELDS
        )
        agents = [Agent.model_validate(item) for item in page.items]
        return page.model_copy(update={"items": agents})

    async def get_agent(self, agent_id: str) -> Agent:
        """Get a single agent by its agent_id."""
        data = await self.get_item(
            endpoints.AGENTS, agent_id, date_fields=AGENT_DATE_FIELDS
        )
        return Agent.model_validate(data)

    async def get_agent_sessions(self, agent_id: str, **params: Any) -> PaginatedResponse:
        """List sessions recorded for an agent."""
        return await self.get_paginated(
            endpoints.agent_sessions(agent_id),
            params=params,
            date_fields=SESSION_DATE_FIELDS,
        )

"""Response models for dashboard API resources."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# Backend IDs are integers for some resources and strings for others
ResourceId = Union[int, str]


class PaginatedResponse(BaseModel):
    """A page of items from a list endpoint."""

    model_config = ConfigDict(extra="allow")

    items: List[Any] = Field(default_factory=list, description="Items in this page")
    total: int = Field(default=0, description="Total items across all pages")
    page: int = Field(default=1, description="Current page number (1-based)")
    page_size: int = Field(default=50, description="Requested page size")

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


class Agent(BaseModel):
    """A registered agent."""

    model_config = ConfigDict(extra="allow")

    agent_id: str = Field(..., description="Agent identifier")
    id: Optional[ResourceId] = Field(default=None, description="Database ID")
    name: Optional[str] = Field(default=None, description="Display name")
    description: Optional[str] = Field(default=None, description="Description")
    version: Optional[str] = Field(default=None, description="Agent version")
    active: Optional[bool] = Field(default=None, description="Whether agent is active")
    last_active: Optional[datetime] = Field(default=None, description="Last activity")
    creation_time: Optional[datetime] = Field(default=None, description="Registration")


class Alert(BaseModel):
    """A security alert raised against an agent."""

    model_config = ConfigDict(extra="allow")

    id: ResourceId = Field(..., description="Alert identifier")
    agent_id: Optional[str] = Field(default=None, description="Agent that raised it")
    severity: Optional[str] = Field(default=None, description="low/medium/high/critical")
    alert_type: Optional[str] = Field(default=None, description="Alert category")
    description: Optional[str] = Field(default=None, description="Alert description")
    timestamp: Optional[datetime] = Field(default=None, description="When raised")
    reviewed: Optional[bool] = Field(default=None, description="Reviewed flag")
    reviewed_by: Optional[str] = Field(default=None, description="Reviewer")
    reviewed_at: Optional[datetime] = Field(default=None, description="When reviewed")


class TelemetryEvent(BaseModel):
    """A telemetry event recorded for an agent."""

    model_config = ConfigDict(extra="allow")

    id: ResourceId = Field(..., description="Event identifier")
    agent_id: Optional[str] = Field(default=None, description="Agent ID")
    name: Optional[str] = Field(default=None, description="Event name")
    level: Optional[str] = Field(default=None, description="Event level")
    timestamp: Optional[datetime] = Field(default=None, description="Event time")
    trace_id: Optional[str] = Field(default=None, description="Trace ID")
    span_id: Optional[str] = Field(default=None, description="Span ID")
    attributes: Dict[str, Any] = Field(default_factory=dict, description="Attributes")

"""API Client Abstractions for the monitoring dashboard.

Provides the transport pipeline, error normalization, retry policy and
per-resource clients. No raw HTTP calls happen outside these classes.
"""

from .base_client import DashboardAPIClient, RequestDescriptor
from .error_normalizer import (
    DashboardAPIError,
    EnhancedError,
    ErrorKind,
    normalize_error,
)
from .retry_policy import RetryPolicy
from .request_params import (
    format_request_params,
    isoformat_utc,
    parse_api_dates,
    parse_api_dates_list,
)
from .models import Agent, Alert, PaginatedResponse, TelemetryEvent
from .agents_client import AgentsAPIClient
from .alerts_client import AlertsAPIClient
from .events_client import EventsAPIClient

__all__ = [
    # Transport pipeline
    "DashboardAPIClient",
    "RequestDescriptor",
    # Errors
    "DashboardAPIError",
    "EnhancedError",
    "ErrorKind",
    "normalize_error",
    # Retry
    "RetryPolicy",
    # Parameter helpers
    "format_request_params",
    "isoformat_utc",
    "parse_api_dates",
    "parse_api_dates_list",
    # Models
    "Agent",
    "Alert",
    "PaginatedResponse",
    "TelemetryEvent",
    # Resource clients
    "AgentsAPIClient",
    "AlertsAPIClient",
    "EventsAPIClient",
]

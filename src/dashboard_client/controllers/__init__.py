"""Reusable controllers layered on the API clients.

AsyncOperation tracks one async fetch with operation-level retry,
PaginationState holds list view paging, and PollingUpdateChannel delivers
periodic update notifications.
"""

from .async_operation import AsyncOperation, OperationState
from .pagination import PaginationState
from .polling import (
    ApiUpdateSource,
    PollingUpdateChannel,
    Subscription,
    UpdateEvent,
    UpdateSource,
    UpdateType,
)

__all__ = [
    "AsyncOperation",
    "OperationState",
    "PaginationState",
    "ApiUpdateSource",
    "PollingUpdateChannel",
    "Subscription",
    "UpdateEvent",
    "UpdateSource",
    "UpdateType",
]

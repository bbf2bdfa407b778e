"""Pagination state for list views (page, page size, sort)."""

import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

SORT_ORDERS = ("asc", "desc")

PaginationParams = Dict[str, Any]


class PaginationState:
    """Holds page/sort state and derives request parameters from it.

    All mutation goes through validating setters; invalid values raise
    ValueError and leave the state unchanged.
    """

    def __init__(
        self,
        initial_page: int = 1,
        initial_page_size: int = 10,
        initial_sort_by: Optional[str] = None,
        initial_sort_order: str = "desc",
        on_change: Optional[Callable[[PaginationParams], Any]] = None,
    ):
        self._validate_page(initial_page)
        self._validate_page_size(initial_page_size)
        self._validate_sort_order(initial_sort_order)

        self._initial = (
            initial_page,
            initial_page_size,
            initial_sort_by,
            initial_sort_order,
        )
        self._page = initial_page
        self._page_size = initial_page_size
        self._sort_by = initial_sort_by
        self._sort_order = initial_sort_order
        self._on_change = on_change

    @staticmethod
    def _validate_page(page: int) -> None:
        if not isinstance(page, int) or isinstance(page, bool) or page < 1:
            raise ValueError(f"page must be an integer >= 1. Got: {page!r}")

    @staticmethod
    def _validate_page_size(page_size: int) -> None:
        if not isinstance(page_size, int) or isinstance(page_size, bool) or page_size <= 0:
            raise ValueError(f"page_size must be a positive integer. Got: {page_size!r}")

    @staticmethod
    def _validate_sort_order(sort_order: str) -> None:
        if sort_order not in SORT_ORDERS:
            raise ValueError(f"sort_order must be one of {SORT_ORDERS}. Got: {sort_order!r}")

    @property
    def page(self) -> int:
        return self._page

    @page.setter
    def page(self, value: int) -> None:
        self._validate_page(value)
        self._update(page=value)

    @property
    def page_size(self) -> int:
        return self._page_size

    @page_size.setter
    def page_size(self, value: int) -> None:
        self._validate_page_size(value)
        self._update(page_size=value)

    @property
    def sort_by(self) -> Optional[str]:
        return self._sort_by

    @sort_by.setter
    def sort_by(self, value: Optional[str]) -> None:
        self._update(sort_by=value)

    @property
    def sort_order(self) -> str:
        return self._sort_order

    @sort_order.setter
    def sort_order(self, value: str) -> None:
        self._validate_sort_order(value)
        self._update(sort_order=value)

    @property
    def pagination_params(self) -> PaginationParams:
        """Request parameters for the current state, None values omitted."""
        params = {
            "page": self._page,
            "page_size": self._page_size,
            "sort_by": self._sort_by,
            "sort_order": self._sort_order,
        }
        return {key: value for key, value in params.items() if value is not None}

    def next_page(self) -> None:
        self._update(page=self._page + 1)

    def prev_page(self) -> None:
        """Go back one page; stays on page 1."""
        self._update(page=max(1, self._page - 1))

    def reset_pagination(self) -> None:
        """Restore the constructor values."""
        page, page_size, sort_by, sort_order = self._initial
        self._update(
            page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order
        )

    def _update(self, **changes: Any) -> None:
        before = self.pagination_params
        for name, value in changes.items():
            setattr(self, f"_{name}", value)
        after = self.pagination_params
        if after == before or self._on_change is None:
            return
        try:
            self._on_change(after)
        except Exception as e:
            logger.error(f"Pagination change listener raised: {e}")

    def __repr__(self) -> str:
        return f"PaginationState({self.pagination_params})"

"""Tests for PaginationState."""

from unittest.mock import Mock

import pytest

from dashboard_client.controllers.pagination import PaginationState


class TestPaginationState:
    def test_defaults(self):
        state = PaginationState()

        assert state.pagination_params == {
            "page": 1,
            "page_size": 10,
            "sort_order": "desc",
        }

    def test_sort_by_included_when_set(self):
        state = PaginationState(initial_sort_by="timestamp", initial_sort_order="asc")

        assert state.pagination_params == {
            "page": 1,
            "page_size": 10,
            "sort_by": "timestamp",
            "sort_order": "asc",
        }

    def test_next_and_prev_page(self):
        state = PaginationState()

        state.next_page()
        state.next_page()
        state.prev_page()

        assert state.page == 2

    def test_prev_page_stays_on_first_page(self):
        state = PaginationState()

        state.prev_page()

        assert state.page == 1

    def test_reset_restores_initial_values(self):
        state = PaginationState(initial_page=2, initial_page_size=25, initial_sort_by="id")
        state.next_page()
        state.page_size = 100
        state.sort_by = "severity"
        state.sort_order = "asc"

        state.reset_pagination()

        assert state.pagination_params == {
            "page": 2,
            "page_size": 25,
            "sort_by": "id",
            "sort_order": "desc",
        }

    @pytest.mark.parametrize(
        "attribute, value",
        [
            ("page", 0),
            ("page", -3),
            ("page_size", 0),
            ("sort_order", "sideways"),
        ],
    )
    def test_invalid_values_rejected(self, attribute, value):
        state = PaginationState()

        with pytest.raises(ValueError):
            setattr(state, attribute, value)

        assert state.pagination_params == PaginationState().pagination_params

    def test_invalid_constructor_values_rejected(self):
        with pytest.raises(ValueError):
            PaginationState(initial_page_size=-1)

    def test_on_change_called_for_effective_changes(self):
        on_change = Mock()
        state = PaginationState(on_change=on_change)

        state.prev_page()
        state.next_page()
        state.page = 2

        on_change.assert_called_once_with(
            {"page": 2, "page_size": 10, "sort_order": "desc"}
        )

    def test_listener_error_does_not_block_update(self):
        state = PaginationState(on_change=Mock(side_effect=RuntimeError("boom")))

        state.next_page()

        assert state.page == 2

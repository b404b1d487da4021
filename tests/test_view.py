"""
Tests for the grid view models and the creation form.
"""

import asyncio

import pytest

from usermessages.client import ApiValidationError
from usermessages.grid import MessageGridController
from usermessages.sorting import SortDirection, SortField
from usermessages.view import (
    CreateMessageForm,
    GridViewModel,
    MessageRowViewModel,
    digits_only,
    format_timestamp,
    pagination_label,
    search_status,
    showing_summary,
    sort_indicator,
    truncate_message,
)


def make_item(message_id, content="Hello"):
    return {
        "id": message_id,
        "senderNumber": 1234567890,
        "recipientNumber": 1234567891,
        "messageContent": content,
        "status": "Submitted",
        "submittedOn": "2025-01-15T10:00:00.123456Z",
        "modifiedOn": "2025-01-15T10:30:00.000000Z",
    }


class TestFormatting:

    @pytest.mark.parametrize("term, active, expected", [
        ("", "", ""),
        ("a", "", "Type 2 more characters to search"),
        ("ab", "", "Type 1 more character to search"),
        ("abc", "", "Searching..."),
        ("abc", "abc", 'Filtering by: "abc"'),
        ("", "abc", 'Filtering by: "abc"'),
    ])
    def test_search_status(self, term, active, expected):
        assert search_status(term, active) == expected

    def test_sort_indicator(self):
        assert sort_indicator(SortField.ID, SortField.SUBMITTED_ON, SortDirection.ASC) == "↕"
        assert sort_indicator(SortField.ID, SortField.ID, SortDirection.ASC) == "↑"
        assert sort_indicator(SortField.ID, SortField.ID, SortDirection.DESC) == "↓"

    def test_truncate_message(self):
        assert truncate_message("short") == "short"
        assert truncate_message("x" * 40) == "x" * 40
        assert truncate_message("x" * 41) == "x" * 40 + "..."

    def test_format_timestamp(self):
        assert format_timestamp("2025-01-15T10:00:00.123456Z") == "2025-01-15 10:00:00"
        assert format_timestamp("not a date") == "not a date"

    def test_showing_summary(self):
        assert showing_summary(3, 10, 5, 25) == "Showing 21 to 25 of 25 messages"
        assert showing_summary(1, 10, 10, 25) == "Showing 1 to 10 of 25 messages"
        assert showing_summary(1, 10, 0, 0) == "Showing 0 to 0 of 0 messages"

    def test_pagination_label(self):
        assert pagination_label(2, 3) == "Page 2 of 3"

    def test_row_view_model(self):
        long_text = "A message that is definitely longer than forty characters"

        short_row = MessageRowViewModel.from_item(make_item(1))
        long_row = MessageRowViewModel.from_item(make_item(2, long_text))

        assert short_row.sender_number == "1234567890"
        assert short_row.full_message is None
        assert short_row.sent_at == "2025-01-15 10:00:00"
        assert long_row.message_preview == long_text[:40] + "..."
        assert long_row.full_message == long_text


class StaticEndpoint:

    def __init__(self, items, total_count):
        self.result = {"items": items, "totalCount": total_count}

    async def __call__(self, query):
        return self.result


class TestGridViewModel:

    @pytest.mark.asyncio
    async def test_loaded_grid(self):
        controller = MessageGridController(StaticEndpoint([make_item(i) for i in range(1, 11)], 25))
        controller.start()
        await controller.wait()

        view = GridViewModel.from_controller(controller)

        assert len(view.rows) == 10
        assert view.summary == "Showing 1 to 10 of 25 messages"
        assert view.pagination == "Page 1 of 3"
        assert view.sort_description == "(Sorted by SubmittedOn DESC)"
        assert view.can_go_back is False
        assert view.can_go_forward is True
        assert view.empty_text is None
        assert view.page_size_options == (5, 10, 25, 50)
        titles = [header.title for header in view.headers]
        assert titles == ["ID ↕", "Message ↕", "Sent At ↓", "Modified At ↕"]
        controller.close()

    @pytest.mark.asyncio
    async def test_empty_grid(self):
        controller = MessageGridController(StaticEndpoint([], 0))
        controller.start()
        await controller.wait()

        view = GridViewModel.from_controller(controller)

        assert view.empty_text == "No messages found"
        assert view.pagination == "Page 1 of 1"
        assert view.can_go_forward is False
        controller.close()

    @pytest.mark.asyncio
    async def test_filtered_grid(self):
        controller = MessageGridController(StaticEndpoint([], 0), debounce_delay=0.01)
        controller.start()
        await controller.wait()
        controller.set_search_term("zzz")
        await asyncio.sleep(0.05)
        await controller.wait()

        view = GridViewModel.from_controller(controller)

        assert view.empty_text == "No messages found matching your search"
        assert view.sort_description == '(Sorted by SubmittedOn DESC), (Filtered by "zzz")'
        assert view.search_hint == 'Filtering by: "zzz"'
        controller.close()

    @pytest.mark.asyncio
    async def test_short_term_flag(self):
        controller = MessageGridController(StaticEndpoint([], 0))
        controller.start()
        await controller.wait()
        controller.set_search_term("zz")

        view = GridViewModel.from_controller(controller)

        assert view.search_too_short is True
        assert view.search_hint == "Type 1 more character to search"
        controller.close()

    @pytest.mark.asyncio
    async def test_error_grid_offers_retry(self):
        async def failing(query):
            raise ApiValidationError("Invalid sortOrder value.", 400)

        controller = MessageGridController(failing)
        controller.start()
        await controller.wait()

        view = GridViewModel.from_controller(controller)

        assert view.error == "Invalid sortOrder value."
        assert view.can_retry is True
        assert view.rows == ()
        controller.close()


class FakeClient:

    def __init__(self, error=None):
        self.created = []
        self.error = error

    async def create_message(self, sender_number, recipient_number, message_content, status=None):
        if self.error is not None:
            raise self.error
        self.created.append((sender_number, recipient_number, message_content))
        return {"id": len(self.created)}


class TestCreateMessageForm:

    def test_digits_only(self):
        assert digits_only("+1 (234) 567-8901") == "12345678901"
        assert digits_only("abc") == ""

    def test_number_inputs_keep_digits(self):
        form = CreateMessageForm()
        form.set_sender_number("123-456-7890")
        form.set_recipient_number("(098) 765 4321")
        form.set_message_content("Hi")

        assert form.sender_number == "1234567890"
        assert form.recipient_number == "0987654321"
        assert form.is_complete
        assert form.to_payload() == {
            "senderNumber": 1234567890,
            "recipientNumber": 987654321,
            "messageContent": "Hi",
        }

    def test_incomplete_form(self):
        form = CreateMessageForm(sender_number="1234567890", recipient_number="1234567891", message_content="  ")

        assert not form.is_complete

    @pytest.mark.asyncio
    async def test_submit_resets_and_refreshes(self):
        endpoint = StaticEndpoint([], 0)
        calls = []

        async def counting(query):
            calls.append(query)
            return await endpoint(query)

        grid = MessageGridController(counting)
        grid.start()
        await grid.wait()
        client = FakeClient()
        form = CreateMessageForm("1234567890", "1234567891", "Hello")

        created = await form.submit(client, grid)
        await grid.wait()

        assert created == {"id": 1}
        assert client.created == [(1234567890, 1234567891, "Hello")]
        assert form.sender_number == form.recipient_number == form.message_content == ""
        assert len(calls) == 2
        grid.close()

    @pytest.mark.asyncio
    async def test_rejected_submit_keeps_values(self):
        form = CreateMessageForm("123", "1234567891", "Hello")

        with pytest.raises(ApiValidationError):
            await form.submit(FakeClient(error=ApiValidationError("senderNumber must be at least 10 digits long", 400)))

        assert form.sender_number == "123"

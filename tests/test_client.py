"""
Tests for the async API client, run in-process against the app.

Tests cover:
- Every client method against the real routes
- Mapping of 400 / 404 / 5xx / transport failures to client errors
- The grid controller driven through the client
"""

import asyncio
from unittest.mock import patch

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from usermessages.client import (
    ApiNotFoundError,
    ApiServerError,
    ApiValidationError,
    MessagesApiClient,
    MessagesQuery,
)
from usermessages.grid import GridStatus, MessageGridController
from usermessages.main import app
from usermessages.sorting import SortField
from usermessages.storage import Base, engine


@pytest_asyncio.fixture
async def api():
    """Client bound to the app through ASGITransport, on a fresh schema."""
    # ASGITransport does not run the lifespan, so create the tables here
    Base.metadata.create_all(bind=engine)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield MessagesApiClient(http_client=http)
    Base.metadata.drop_all(bind=engine)


async def seed(api, count):
    for i in range(count):
        await api.create_message(1234567890, 1234567891, f"Message {i + 1}")


class TestClientOperations:

    @pytest.mark.asyncio
    async def test_create_and_get(self, api):
        created = await api.create_message(1234567890, 9876543210, "Hi there", status="Queued")

        fetched = await api.get_message(created["id"])

        assert fetched == created
        assert fetched["status"] == "Queued"
        assert fetched["recipientNumber"] == 9876543210

    @pytest.mark.asyncio
    async def test_get_messages_passes_query(self, api):
        await seed(api, 12)

        page = await api.get_messages(MessagesQuery(
            message_filter="message 1",
            sort_by="Id",
            sort_order="DESC",
            page_number=1,
            page_size=2,
        ))

        # "Message 1", "Message 10".."Message 12"
        assert page["totalCount"] == 4
        assert [item["id"] for item in page["items"]] == [12, 11]
        assert page["hasNextPage"] is True

    @pytest.mark.asyncio
    async def test_get_messages_defaults(self, api):
        await seed(api, 3)

        page = await api.get_messages()

        assert page["pageNumber"] == 1
        assert page["pageSize"] == 10
        assert [item["id"] for item in page["items"]] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_update_message(self, api):
        created = await api.create_message(1234567890, 1234567891, "before")

        assert await api.update_message(created["id"], "after") is None

        fetched = await api.get_message(created["id"])
        assert fetched["messageContent"] == "after"
        assert fetched["modifiedOn"] > created["modifiedOn"]

    @pytest.mark.asyncio
    async def test_delete_message(self, api):
        created = await api.create_message(1234567890, 1234567891, "short lived")

        await api.delete_message(created["id"])

        with pytest.raises(ApiNotFoundError):
            await api.get_message(created["id"])


class TestClientErrors:

    @pytest.mark.asyncio
    async def test_validation_error(self, api):
        with pytest.raises(ApiValidationError) as exc_info:
            await api.create_message(123, 1234567891, "Hi")

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "senderNumber must be at least 10 digits long"

    @pytest.mark.asyncio
    async def test_invalid_sort_is_validation_error(self, api):
        with pytest.raises(ApiValidationError, match="Invalid sortBy field"):
            await api.get_messages(MessagesQuery(sort_by="Status"))

    @pytest.mark.asyncio
    async def test_not_found_carries_server_message(self, api):
        with pytest.raises(ApiNotFoundError) as exc_info:
            await api.update_message(77, "nothing here")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Message with ID 77 not found for update."

    @pytest.mark.asyncio
    async def test_server_error(self, api):
        failure = OperationalError("SELECT", {}, Exception("disk I/O error"))
        with patch("usermessages.query.run_message_query", side_effect=failure):
            with pytest.raises(ApiServerError) as exc_info:
                await api.get_messages()

        assert exc_info.value.status_code == 500
        assert exc_info.value.message.startswith("Failed to get messages: 500")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://test") as http:
            api = MessagesApiClient(http_client=http)
            with pytest.raises(ApiServerError) as exc_info:
                await api.get_messages()

        assert exc_info.value.status_code is None
        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_owned_client_is_closed(self):
        async with MessagesApiClient(base_url="http://test") as api:
            http = api._http
        assert http.is_closed


class TestGridOverClient:
    """The grid controller wired to the real API."""

    @pytest.mark.asyncio
    async def test_grid_loads_and_pages(self, api):
        await seed(api, 25)
        controller = MessageGridController.for_client(api, debounce_delay=0.05)

        controller.start()
        await controller.wait()

        assert controller.status is GridStatus.LOADED
        assert controller.total_count == 25
        assert len(controller.items) == 10
        assert controller.total_pages == 3

        controller.toggle_sort(SortField.ID)
        await controller.wait()
        controller.toggle_sort(SortField.ID)
        await controller.wait()
        controller.go_to_last()
        await controller.wait()

        assert [item["id"] for item in controller.items] == [21, 22, 23, 24, 25]
        controller.close()

    @pytest.mark.asyncio
    async def test_grid_search(self, api):
        await seed(api, 12)
        controller = MessageGridController.for_client(api, debounce_delay=0.05)
        controller.start()
        await controller.wait()

        controller.set_search_term("age 1")
        await asyncio.sleep(0.2)
        await controller.wait()

        assert controller.active_filter == "age 1"
        assert controller.total_count == 4
        controller.close()

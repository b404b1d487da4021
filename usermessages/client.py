"""
Async HTTP client for the user messages API.

Each method maps to one route. Non-2xx responses raise an
``ApiClientError`` subclass chosen by status code, so callers can tell a
bad request or a missing message apart from a server or transport failure.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class ApiClientError(Exception):
    """A request to the API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ApiValidationError(ApiClientError):
    """The API rejected the request (400)."""


class ApiNotFoundError(ApiClientError):
    """The requested message does not exist (404)."""


class ApiServerError(ApiClientError):
    """Server-side failure (5xx, unexpected status) or transport error."""


@dataclass(frozen=True)
class MessagesQuery:
    """Filtering, sorting and pagination parameters for a list request."""

    message_filter: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
    page_number: Optional[int] = None
    page_size: Optional[int] = None

    def to_params(self) -> dict[str, str]:
        """Query-string parameters; unset or empty values are left out."""
        params = {}
        if self.message_filter:
            params["messageFilter"] = self.message_filter
        if self.sort_by:
            params["sortBy"] = self.sort_by
        if self.sort_order:
            params["sortOrder"] = self.sort_order
        if self.page_number is not None:
            params["pageNumber"] = str(self.page_number)
        if self.page_size is not None:
            params["pageSize"] = str(self.page_size)
        return params


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.text


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    detail = _error_detail(response)
    message = f"Failed to {action}: {response.status_code} - {detail}"
    if response.status_code == 400:
        raise ApiValidationError(detail, response.status_code)
    if response.status_code == 404:
        raise ApiNotFoundError(detail, response.status_code)
    raise ApiServerError(message, response.status_code)


class MessagesApiClient:
    """
    Thin wrapper over ``httpx.AsyncClient``.

    Pass an existing client (e.g. one bound to ``httpx.ASGITransport``) or a
    base URL; a client created here is closed by ``aclose``.
    """

    def __init__(self, base_url: str = "", http_client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "MessagesApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _request(self, action: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._http.request(method, url, headers={"Accept": "application/json"}, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"Transport error while trying to {action}: {e}")
            raise ApiServerError(f"Failed to {action}: {e}") from e
        _raise_for_status(response, action)
        return response

    async def create_message(
        self,
        sender_number: int,
        recipient_number: int,
        message_content: str,
        status: Optional[str] = None,
    ) -> dict[str, Any]:
        payload = {
            "senderNumber": sender_number,
            "recipientNumber": recipient_number,
            "messageContent": message_content,
        }
        if status is not None:
            payload["status"] = status
        response = await self._request("create message", "POST", "/messages", json=payload)
        return response.json()

    async def get_messages(self, query: Optional[MessagesQuery] = None) -> dict[str, Any]:
        """Fetch one page; returns the decoded paged result."""
        params = (query or MessagesQuery()).to_params()
        response = await self._request("get messages", "GET", "/messages", params=params)
        return response.json()

    async def get_message(self, message_id: int) -> dict[str, Any]:
        response = await self._request(f"get message {message_id}", "GET", f"/messages/{message_id}")
        return response.json()

    async def update_message(self, message_id: int, message_content: str) -> None:
        # The route takes the content as a bare JSON string
        await self._request(f"update message {message_id}", "PUT", f"/messages/{message_id}", json=message_content)

    async def delete_message(self, message_id: int) -> None:
        await self._request(f"delete message {message_id}", "DELETE", f"/messages/{message_id}")

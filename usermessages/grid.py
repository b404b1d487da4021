"""
Client-side controller for the paginated message grid.

``MessageGridController`` owns the grid's query state (search term, sort,
page, page size) and talks to the API through a ``fetch_page`` coroutine
function. It runs on a single asyncio event loop:

- typing is debounced with ``loop.call_later``; terms of 1-2 characters
  never reach the server
- every change to the active filter, sort or page issues exactly one fetch
- a new fetch cancels the one in flight, and a generation counter drops
  any result that still arrives from a superseded fetch
- ``close()`` releases the timer and the in-flight task; nothing updates
  the state afterwards
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from usermessages.client import (
    ApiClientError,
    ApiNotFoundError,
    ApiValidationError,
    MessagesApiClient,
    MessagesQuery,
)
from usermessages.sorting import SortDirection, SortField

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_DELAY = 1.0
MIN_SEARCH_LENGTH = 3
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
PAGE_SIZE_OPTIONS = (5, 10, 25, 50)

FetchPage = Callable[[MessagesQuery], Awaitable[dict]]
Listener = Callable[["MessageGridController"], None]


class GridStatus(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    SERVER = "server"


@dataclass(frozen=True)
class GridRequest:
    """The parameters of one list request, as issued."""

    filter_text: str
    sort_by: SortField
    sort_order: SortDirection
    page_number: int
    page_size: int

    def to_query(self) -> MessagesQuery:
        return MessagesQuery(
            message_filter=self.filter_text or None,
            sort_by=self.sort_by.value,
            sort_order=self.sort_order.value,
            page_number=self.page_number,
            page_size=self.page_size,
        )


@dataclass(frozen=True)
class GridPage:
    items: list = field(default_factory=list)
    total_count: int = 0


class MessageGridController:
    """
    State machine behind the message grid.

    Call ``start()`` once the event loop is running to issue the initial
    fetch. All other methods must be called from the loop's thread.
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_by: SortField = SortField.SUBMITTED_ON,
        sort_order: SortDirection = SortDirection.DESC,
    ):
        self._fetch_page = fetch_page
        self.debounce_delay = debounce_delay

        self.search_term = ""
        self.active_filter = ""
        self.sort_by = sort_by
        self.sort_order = sort_order
        self.page_number = 1
        self.page_size = _clamp_page_size(page_size)

        self.page = GridPage()
        self.error: Optional[str] = None
        self.error_kind: Optional[ErrorKind] = None
        self.last_request: Optional[GridRequest] = None

        self._pending_term: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._loaded = False
        self._closed = False
        self._listeners: list[Listener] = []

    @classmethod
    def for_client(cls, client: MessagesApiClient, **kwargs) -> "MessageGridController":
        return cls(client.get_messages, **kwargs)

    # -------------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------------

    @property
    def status(self) -> GridStatus:
        if self.is_loading:
            return GridStatus.LOADING
        if self.is_debouncing:
            return GridStatus.DEBOUNCING
        if self.error is not None:
            return GridStatus.ERROR
        if self._loaded:
            return GridStatus.LOADED
        return GridStatus.IDLE

    @property
    def is_loading(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_debouncing(self) -> bool:
        return self._timer is not None

    @property
    def pending_term(self) -> Optional[str]:
        return self._pending_term

    @property
    def items(self) -> list:
        return self.page.items

    @property
    def total_count(self) -> int:
        return self.page.total_count

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)

    @property
    def display_total_pages(self) -> int:
        return self.total_pages or 1

    @property
    def closed(self) -> bool:
        return self._closed

    def current_request(self) -> GridRequest:
        return GridRequest(
            filter_text=self.active_filter,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
            page_number=self.page_number,
            page_size=self.page_size,
        )

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    def set_search_term(self, term: str) -> None:
        """
        Record typed search input.

        Empty input or at least three characters starts the debounce timer;
        one or two characters only cancel whatever was pending.
        """
        if self._closed:
            return
        self.search_term = term
        self._cancel_timer()

        if len(term) == 0 or len(term) >= MIN_SEARCH_LENGTH:
            self._pending_term = term
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.debounce_delay, self._commit_search, term)
        self._notify()

    def clear_search(self) -> None:
        """Drop the typed and active term immediately."""
        if self._closed:
            return
        self.search_term = ""
        self._cancel_timer()
        if self.active_filter or self.page_number != 1:
            self.active_filter = ""
            self.page_number = 1
            self._issue_fetch()
        self._notify()

    def _commit_search(self, term: str) -> None:
        self._timer = None
        self._pending_term = None
        if self._closed:
            return
        if term != self.active_filter or self.page_number != 1:
            logger.debug(f"Search committed: {term!r}")
            self.active_filter = term
            self.page_number = 1
            self._issue_fetch()
        self._notify()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending_term = None

    # -------------------------------------------------------------------------
    # Sorting and paging
    # -------------------------------------------------------------------------

    def toggle_sort(self, sort_field: Union[SortField, str]) -> None:
        """
        Header click: the current field flips direction, a new field
        starts descending. Either way the grid goes back to page 1.
        """
        if self._closed:
            return
        if not isinstance(sort_field, SortField):
            sort_field = SortField.parse(sort_field)
        if sort_field is self.sort_by:
            self.sort_order = self.sort_order.flipped()
        else:
            self.sort_by = sort_field
            self.sort_order = SortDirection.DESC
        self.page_number = 1
        self._issue_fetch()
        self._notify()

    def go_to_page(self, page_number: int) -> bool:
        """Move to a page within [1, total_pages]. Returns False if ignored."""
        if self._closed:
            return False
        if page_number < 1 or page_number > self.total_pages or page_number == self.page_number:
            return False
        self.page_number = page_number
        self._issue_fetch()
        self._notify()
        return True

    def go_to_first(self) -> bool:
        return self.go_to_page(1)

    def go_to_previous(self) -> bool:
        return self.go_to_page(self.page_number - 1)

    def go_to_next(self) -> bool:
        return self.go_to_page(self.page_number + 1)

    def go_to_last(self) -> bool:
        return self.go_to_page(self.total_pages)

    def set_page_size(self, page_size: int) -> None:
        if self._closed:
            return
        page_size = _clamp_page_size(page_size)
        if page_size == self.page_size and self.page_number == 1:
            return
        self.page_size = page_size
        self.page_number = 1
        self._issue_fetch()
        self._notify()

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def start(self) -> Optional[asyncio.Task]:
        """Issue the initial fetch."""
        if self._closed:
            return None
        return self._issue_fetch()

    def refresh(self) -> Optional[asyncio.Task]:
        """Re-issue the current request, e.g. after a message was created."""
        if self._closed:
            return None
        return self._issue_fetch()

    def retry(self) -> Optional[asyncio.Task]:
        """Replay the last request exactly as it was issued."""
        if self._closed or self.last_request is None:
            return None
        return self._issue_fetch(self.last_request)

    def dismiss_error(self) -> None:
        """Hide the error banner without re-fetching."""
        if self._closed or self.error is None:
            return
        self.error = None
        self.error_kind = None
        self._notify()

    async def wait(self) -> None:
        """Wait for the in-flight fetch, if any, to settle."""
        while self._task is not None and not self._task.done():
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    def _issue_fetch(self, request: Optional[GridRequest] = None) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            self._task.cancel()

        request = request or self.current_request()
        self._generation += 1
        self.last_request = request
        self.error = None
        self.error_kind = None

        logger.debug(f"Fetching page {request.page_number} (generation {self._generation})")
        self._task = asyncio.get_running_loop().create_task(self._run_fetch(self._generation, request))
        return self._task

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    async def _run_fetch(self, generation: int, request: GridRequest) -> None:
        try:
            result = await self._fetch_page(request.to_query())
        except asyncio.CancelledError:
            # Superseded or closed; not an error
            raise
        except ApiClientError as e:
            if self._is_current(generation):
                self._fail(e.message, _classify(e))
            return
        except Exception as e:
            if self._is_current(generation):
                logger.error(f"Unexpected error while fetching messages: {e}")
                self._fail(str(e) or "Failed to fetch messages", ErrorKind.SERVER)
            return

        if not self._is_current(generation):
            logger.debug(f"Dropping stale result of generation {generation}")
            return

        self.page = GridPage(items=list(result.get("items", [])), total_count=int(result.get("totalCount", 0)))
        self._loaded = True
        self._task = None
        self._notify()

    def _fail(self, message: str, kind: ErrorKind) -> None:
        self.error = message or "Failed to fetch messages"
        self.error_kind = kind
        self.page = GridPage()
        self._task = None
        self._notify()

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Cancel the debounce timer and the in-flight fetch."""
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._listeners.clear()


def _clamp_page_size(page_size: int) -> int:
    return min(max(1, page_size), MAX_PAGE_SIZE)


def _classify(error: ApiClientError) -> ErrorKind:
    if isinstance(error, ApiValidationError):
        return ErrorKind.VALIDATION
    if isinstance(error, ApiNotFoundError):
        return ErrorKind.NOT_FOUND
    return ErrorKind.SERVER

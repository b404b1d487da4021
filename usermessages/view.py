"""
View models for the message grid and the creation form.

Everything here is a pure function of controller state, so any UI layer
(template, terminal, desktop toolkit) can render the grid from it.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from usermessages.grid import MIN_SEARCH_LENGTH, PAGE_SIZE_OPTIONS, GridStatus, MessageGridController
from usermessages.sorting import SortDirection, SortField

TRUNCATE_AT = 40

SORTABLE_COLUMNS = (
    (SortField.ID, "ID"),
    (SortField.MESSAGE_CONTENT, "Message"),
    (SortField.SUBMITTED_ON, "Sent At"),
    (SortField.MODIFIED_ON, "Modified At"),
)


def search_status(search_term: str, active_filter: str) -> str:
    """Hint shown under the search box."""
    if 0 < len(search_term) < MIN_SEARCH_LENGTH:
        remaining = MIN_SEARCH_LENGTH - len(search_term)
        return f"Type {remaining} more character{'s' if remaining > 1 else ''} to search"
    if len(search_term) >= MIN_SEARCH_LENGTH and search_term != active_filter:
        return "Searching..."
    if active_filter:
        return f'Filtering by: "{active_filter}"'
    return ""


def sort_indicator(sort_field: SortField, current_field: SortField, direction: SortDirection) -> str:
    if sort_field is not current_field:
        return "↕"
    return "↑" if direction is SortDirection.ASC else "↓"


def truncate_message(text: str, max_length: int = TRUNCATE_AT) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def format_timestamp(value: str) -> str:
    """Render an API timestamp (ISO-8601, Z suffix) for display."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return parsed.strftime("%Y-%m-%d %H:%M:%S")


def showing_summary(page_number: int, page_size: int, row_count: int, total_count: int) -> str:
    """'Showing 21 to 25 of 25 messages'"""
    first = 0 if row_count == 0 else (page_number - 1) * page_size + 1
    last = min(page_number * page_size, total_count)
    return f"Showing {first} to {last} of {total_count} messages"


def pagination_label(page_number: int, display_total_pages: int) -> str:
    return f"Page {page_number} of {display_total_pages}"


@dataclass(frozen=True)
class MessageRowViewModel:
    id: int
    sender_number: str
    recipient_number: str
    message_preview: str
    full_message: Optional[str]
    status: str
    sent_at: str
    modified_at: str

    @classmethod
    def from_item(cls, item: dict) -> "MessageRowViewModel":
        content = item.get("messageContent", "")
        return cls(
            id=item["id"],
            sender_number=str(item.get("senderNumber", "")),
            recipient_number=str(item.get("recipientNumber", "")),
            message_preview=truncate_message(content),
            # Full text only when the preview is cut, for a tooltip
            full_message=content if len(content) > TRUNCATE_AT else None,
            status=item.get("status", ""),
            sent_at=format_timestamp(item.get("submittedOn", "")),
            modified_at=format_timestamp(item.get("modifiedOn", "")),
        )


@dataclass(frozen=True)
class ColumnHeaderViewModel:
    field: SortField
    label: str
    indicator: str

    @property
    def title(self) -> str:
        return f"{self.label} {self.indicator}"


@dataclass(frozen=True)
class GridViewModel:
    """Everything needed to draw the grid for one controller state."""

    rows: tuple
    headers: tuple
    search_term: str
    search_hint: str
    search_too_short: bool
    empty_text: Optional[str]
    loading: bool
    error: Optional[str]
    can_retry: bool
    summary: str
    sort_description: str
    pagination: str
    page_size: int
    page_size_options: tuple
    can_go_back: bool
    can_go_forward: bool

    @classmethod
    def from_controller(cls, controller: MessageGridController) -> "GridViewModel":
        status = controller.status
        rows = tuple(MessageRowViewModel.from_item(item) for item in controller.items)
        headers = tuple(
            ColumnHeaderViewModel(field, label, sort_indicator(field, controller.sort_by, controller.sort_order))
            for field, label in SORTABLE_COLUMNS
        )

        empty_text = None
        if not rows and status is not GridStatus.LOADING:
            empty_text = "No messages found matching your search" if controller.active_filter else "No messages found"

        sort_description = f"(Sorted by {controller.sort_by.value} {controller.sort_order.value})"
        if controller.active_filter:
            sort_description += f', (Filtered by "{controller.active_filter}")'

        return cls(
            rows=rows,
            headers=headers,
            search_term=controller.search_term,
            search_hint=search_status(controller.search_term, controller.active_filter),
            search_too_short=0 < len(controller.search_term) < MIN_SEARCH_LENGTH,
            empty_text=empty_text,
            loading=status is GridStatus.LOADING,
            error=controller.error,
            can_retry=status is GridStatus.ERROR and controller.last_request is not None,
            summary=showing_summary(controller.page_number, controller.page_size, len(rows), controller.total_count),
            sort_description=sort_description,
            pagination=pagination_label(controller.page_number, controller.display_total_pages),
            page_size=controller.page_size,
            page_size_options=PAGE_SIZE_OPTIONS,
            can_go_back=controller.page_number > 1,
            can_go_forward=controller.page_number < controller.total_pages,
        )


def digits_only(value: str) -> str:
    return re.sub(r"[^0-9]", "", value)


@dataclass
class CreateMessageForm:
    """
    State of the "Create Message" form.

    Phone inputs keep digits only, mirroring a numeric input field.
    """

    sender_number: str = ""
    recipient_number: str = ""
    message_content: str = ""

    def set_sender_number(self, value: str) -> None:
        self.sender_number = digits_only(value)

    def set_recipient_number(self, value: str) -> None:
        self.recipient_number = digits_only(value)

    def set_message_content(self, value: str) -> None:
        self.message_content = value

    @property
    def is_complete(self) -> bool:
        return bool(self.sender_number and self.recipient_number and self.message_content.strip())

    def reset(self) -> None:
        self.sender_number = ""
        self.recipient_number = ""
        self.message_content = ""

    def to_payload(self) -> dict:
        """Create payload as sent to POST /messages; the server does the validation."""
        return {
            "senderNumber": int(self.sender_number) if self.sender_number else 0,
            "recipientNumber": int(self.recipient_number) if self.recipient_number else 0,
            "messageContent": self.message_content,
        }

    async def submit(self, client, grid: Optional[MessageGridController] = None) -> dict:
        """
        Create the message, reset the form and refresh the grid.

        Raises:
            ApiClientError: when the API rejects the message; the form keeps
                its values so the user can correct them
        """
        payload = self.to_payload()
        created = await client.create_message(
            payload["senderNumber"],
            payload["recipientNumber"],
            payload["messageContent"],
        )
        self.reset()
        if grid is not None:
            grid.refresh()
        return created

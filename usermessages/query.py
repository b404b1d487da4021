"""
Query construction for the paginated message listing.

The listing is driven by untrusted query-string values. Those are parsed
into ``SortField`` / ``SortDirection`` members and clamped page numbers
before a ``MessageQuery`` is built, so nothing here ever orders by a
caller-supplied column name.

Filtering is a case-insensitive substring match on the message content.
LIKE wildcards in the filter text are escaped and match literally.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.orm import Query, Session

from usermessages.models import MAX_SQL_INTEGER, Message
from usermessages.sorting import DEFAULT_SORT_DIRECTION, DEFAULT_SORT_FIELD, SortDirection, SortField

logger = logging.getLogger(__name__)

LIKE_ESCAPE_CHAR = "\\"


_SORT_COLUMNS = {
    SortField.ID: Message.id,
    SortField.MESSAGE_CONTENT: Message.message_content,
    SortField.SUBMITTED_ON: Message.submitted_on,
    SortField.MODIFIED_ON: Message.modified_on,
}


def clamp_page_number(page_number: int) -> int:
    """Page numbers below 1 become 1."""
    return max(1, page_number)


def clamp_page_size(page_size: int, max_page_size: int = 100) -> int:
    """Clamp a page size into [1, max_page_size]."""
    return min(max(1, page_size), max_page_size)


def escape_like(text: str, escape_char: str = LIKE_ESCAPE_CHAR) -> str:
    """Escape LIKE metacharacters so the text matches literally."""
    return (
        text.replace(escape_char, escape_char * 2)
        .replace("%", f"{escape_char}%")
        .replace("_", f"{escape_char}_")
    )


@dataclass(frozen=True)
class MessageQuery:
    """
    A validated listing request.

    Build it from parsed enums and clamped page values; the builder
    trusts every field.
    """

    filter_text: Optional[str] = None
    sort_field: SortField = DEFAULT_SORT_FIELD
    sort_direction: SortDirection = DEFAULT_SORT_DIRECTION
    page_number: int = 1
    page_size: int = 10

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size

    @property
    def has_filter(self) -> bool:
        return bool(self.filter_text and self.filter_text.strip())


def apply_filter(query: Query, filter_text: Optional[str]) -> Query:
    """Restrict a Message query to content containing filter_text."""
    if not filter_text or not filter_text.strip():
        return query
    pattern = f"%{escape_like(filter_text)}%"
    return query.filter(Message.message_content.ilike(pattern, escape=LIKE_ESCAPE_CHAR))


def apply_ordering(query: Query, sort_field: SortField, sort_direction: SortDirection) -> Query:
    """
    Order by the requested column, then by id ascending.

    The id tie-breaker keeps page boundaries stable when many rows share
    a sort key.
    """
    column = _SORT_COLUMNS[sort_field]
    primary = column.desc() if sort_direction is SortDirection.DESC else column.asc()
    if sort_field is SortField.ID:
        return query.order_by(primary)
    return query.order_by(primary, Message.id.asc())


def build_message_query(db: Session, request: MessageQuery) -> Tuple[Query, Query]:
    """
    Build the page query and the count query for a listing request.

    Returns:
        Tuple of (page query, filtered query for counting)
    """
    filtered = apply_filter(db.query(Message), request.filter_text)
    if request.has_filter:
        logger.debug(f"Applied content filter: {request.filter_text!r}")

    page = (
        apply_ordering(filtered, request.sort_field, request.sort_direction)
        .offset(request.offset)
        .limit(request.page_size)
    )
    logger.debug(
        f"Ordering by {request.sort_field.value} {request.sort_direction.value}, "
        f"offset={request.offset}, limit={request.page_size}"
    )
    return page, filtered


def run_message_query(db: Session, request: MessageQuery) -> Tuple[list, int]:
    """
    Execute a listing request.

    Returns:
        Tuple of (messages on the requested page, total count matching the filter)
    """
    page, filtered = build_message_query(db, request)
    total = filtered.count()
    if request.offset > MAX_SQL_INTEGER:
        # Past the last addressable row, so the page is empty
        return [], total
    messages = page.all()
    return messages, total

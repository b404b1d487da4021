"""
Sort keys accepted by the message listing.

Shared by the server-side query builder and the grid controller, so the
allow-list lives in one place.
"""

from enum import Enum
from typing import Optional


class SortField(str, Enum):
    """Columns the listing may be ordered by."""

    ID = "Id"
    MESSAGE_CONTENT = "MessageContent"
    SUBMITTED_ON = "SubmittedOn"
    MODIFIED_ON = "ModifiedOn"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortField":
        """
        Parse a sort field name, ignoring case. Blank means the default.

        Raises:
            ValueError: if the value is not one of the allowed fields
        """
        if value is None or not value.strip():
            return DEFAULT_SORT_FIELD
        wanted = value.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        raise ValueError(
            f"Invalid sortBy field. Allowed values are: {', '.join(m.value for m in cls)}."
        )


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortDirection":
        """
        Parse a sort direction, ignoring case. Blank means the default.

        Raises:
            ValueError: if the value is neither ASC nor DESC
        """
        if value is None or not value.strip():
            return DEFAULT_SORT_DIRECTION
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError("Invalid sortOrder value. Allowed values are: ASC, DESC.") from None

    def flipped(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


DEFAULT_SORT_FIELD = SortField.SUBMITTED_ON
DEFAULT_SORT_DIRECTION = SortDirection.ASC

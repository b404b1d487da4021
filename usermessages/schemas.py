"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses

Fields are snake_case in Python and camelCase on the wire.
"""

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

# Largest value a signed 64-bit column can hold
MAX_PHONE_NUMBER = 2**63 - 1
MIN_PHONE_DIGITS = 10


def format_timestamp(value: datetime) -> str:
    """Render a naive UTC datetime as ISO-8601 with a Z suffix."""
    return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# Pydantic Request Models
# =============================================================================

class MessageCreateRequest(CamelModel):
    """
    Payload for creating a message.

    Validates:
    - senderNumber/recipientNumber: positive, at least 10 digits
    - messageContent: not blank
    - status: optional, free-form
    """
    sender_number: int = Field(..., description="Sender phone number, at least 10 digits")
    recipient_number: int = Field(..., description="Recipient phone number, at least 10 digits")
    message_content: str = Field(..., description="Message text")
    status: Optional[str] = Field(None, max_length=50, description="Initial message status")

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "senderNumber": 1234567890,
                    "recipientNumber": 1234567891,
                    "messageContent": "Hello",
                }
            ]
        },
    )

    @field_validator("sender_number", "recipient_number")
    @classmethod
    def validate_phone_number(cls, v: int, info) -> int:
        name = to_camel(info.field_name)
        if v <= 0:
            raise ValueError(f"{name} must be a positive number")
        if v > MAX_PHONE_NUMBER:
            raise ValueError(f"{name} must fit in a 64-bit integer")
        if len(str(v)) < MIN_PHONE_DIGITS:
            raise ValueError(f"{name} must be at least {MIN_PHONE_DIGITS} digits long")
        return v

    @field_validator("message_content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("messageContent must not be empty")
        return v


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")
    error_type: str = Field(..., description="Error category")
    errors: Optional[list[dict]] = Field(None, description="Field-level validation messages")


class MessageResponse(CamelModel):
    """A stored message as returned by the API."""
    id: int
    sender_number: int
    recipient_number: int
    message_content: str
    status: str
    submitted_on: datetime
    modified_on: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("submitted_on", "modified_on")
    def serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)


class PagedMessagesResponse(CamelModel):
    """
    Response model for GET /messages.

    totalCount counts every message matching the filter, ignoring
    pagination. totalPages is 0 when nothing matches.
    """
    items: list[MessageResponse] = Field(default_factory=list)
    total_count: int = Field(..., ge=0)
    page_number: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total_pages: int = Field(..., ge=0)
    has_previous_page: bool
    has_next_page: bool

    @classmethod
    def from_page(cls, messages: list, total_count: int, page_number: int, page_size: int) -> "PagedMessagesResponse":
        total_pages = math.ceil(total_count / page_size) if total_count > 0 else 0
        return cls(
            items=[MessageResponse.model_validate(m) for m in messages],
            total_count=total_count,
            page_number=page_number,
            page_size=page_size,
            total_pages=total_pages,
            has_previous_page=page_number > 1,
            has_next_page=page_number < total_pages,
        )


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")

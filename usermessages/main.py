import json
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Annotated, Optional
from urllib.parse import parse_qsl

from fastapi import FastAPI, Response, Request, Depends, Path, Query, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from usermessages.config import settings
from usermessages.errors import (
    NotFoundError,
    StorageError,
    ValidationError,
    field_errors,
    register_exception_handlers,
    summarize,
)
from usermessages.logging_utils import setup_logging, RequestLoggingMiddleware, log_message_data
from usermessages.metrics import record_message_operation, get_metrics, get_metrics_content_type
from usermessages.query import MessageQuery, clamp_page_number, clamp_page_size
from usermessages.sorting import SortDirection, SortField
from usermessages.schemas import (
    ErrorResponse,
    HealthResponse,
    MessageCreateRequest,
    MessageResponse,
    PagedMessagesResponse,
)
from usermessages.storage import (
    init_db,
    check_db_health,
    get_db,
    create_message,
    get_message_by_id,
    list_messages,
    update_message,
    delete_message,
)


setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and create tables
    """
    init_db()
    yield


app = FastAPI(
    title="User Messages API",
    description="CRUD service for messages between phone numbers, with paginated search",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    500: {"model": ErrorResponse, "description": "Unexpected error"},
}
NOT_FOUND_RESPONSE = {404: {"model": ErrorResponse, "description": "Message not found"}}


def _reject(request: Request, operation: str, exc: ValidationError, message_id: Optional[int] = None) -> ValidationError:
    """Record a validation failure for logs and metrics and hand the error back for raising."""
    record_message_operation(operation, "validation_error")
    log_message_data(request, operation=operation, result="validation_error", message_id=message_id)
    return exc


def _check_message_id(request: Request, operation: str, message_id: int) -> None:
    if message_id <= 0:
        raise _reject(request, operation, ValidationError("Invalid message ID."), message_id)


def _not_found(request: Request, operation: str, message_id: int, message: str) -> NotFoundError:
    record_message_operation(operation, "not_found")
    log_message_data(request, operation=operation, result="not_found", message_id=message_id)
    return NotFoundError(message)


@contextmanager
def _storage_errors_recorded(request: Request, operation: str, message_id: Optional[int] = None):
    """Count and log a storage failure before it propagates to the error handler."""
    try:
        yield
    except StorageError:
        record_message_operation(operation, "storage_error")
        log_message_data(request, operation=operation, result="storage_error", message_id=message_id)
        raise


async def _read_create_payload(request: Request) -> dict:
    """
    Collect the create payload from a JSON body, a form-encoded body,
    or, when the body is empty, the query string.
    """
    raw_body = await request.body()
    content_type = request.headers.get("content-type", "")

    if not raw_body.strip():
        return dict(request.query_params)

    if content_type.startswith("application/x-www-form-urlencoded"):
        try:
            return dict(parse_qsl(raw_body.decode("utf-8")))
        except UnicodeDecodeError as e:
            raise ValidationError(f"Invalid form body: {e}")

    try:
        body = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"Invalid JSON: {e}")
    if body is None:
        raise ValidationError("Message data is null.")
    if not isinstance(body, dict):
        raise ValidationError("Message data must be a JSON object.")
    return body


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the database is reachable and
    the messages table exists, 503 otherwise.
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Message Routes
# =============================================================================

@app.post(
    "/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_message_route(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """
    Create a message.

    The payload ({senderNumber, recipientNumber, messageContent, status?})
    may arrive as a JSON body, a form-encoded body, or query parameters.
    Both numbers must be positive with at least 10 digits and the content
    must not be blank.
    """
    try:
        payload = await _read_create_payload(request)
        data = MessageCreateRequest.model_validate(payload)
    except ValidationError as e:
        raise _reject(request, "create", e)
    except PydanticValidationError as e:
        details = field_errors(e.errors())
        raise _reject(request, "create", ValidationError(summarize(details), details=details))

    with _storage_errors_recorded(request, "create"):
        message = create_message(
            db=db,
            sender_number=data.sender_number,
            recipient_number=data.recipient_number,
            message_content=data.message_content,
            status=data.status,
        )

    record_message_operation("create", "created")
    log_message_data(request, operation="create", result="created", message_id=message.id)
    response.headers["Location"] = f"/messages/{message.id}"
    return MessageResponse.model_validate(message)


@app.get(
    "/messages",
    response_model=PagedMessagesResponse,
    responses=ERROR_RESPONSES,
)
async def list_messages_route(
    request: Request,
    message_filter: Annotated[Optional[str], Query(alias="messageFilter", description="Substring to look for in the message content (case-insensitive)")] = None,
    sort_by: Annotated[Optional[str], Query(alias="sortBy", description="Id, MessageContent, SubmittedOn or ModifiedOn")] = None,
    sort_order: Annotated[Optional[str], Query(alias="sortOrder", description="ASC or DESC")] = None,
    page_number: Annotated[int, Query(alias="pageNumber", description="1-based page number, clamped to >= 1")] = 1,
    page_size: Annotated[int, Query(alias="pageSize", description="Page size, clamped to [1, 100]")] = settings.DEFAULT_PAGE_SIZE,
    db: Session = Depends(get_db),
) -> PagedMessagesResponse:
    """
    List messages with filtering, sorting and pagination.

    Ordering:
        - By sortBy/sortOrder (default SubmittedOn ASC), ties broken by Id ASC

    Response:
        - items: messages on the requested page
        - totalCount: messages matching the filter, ignoring pagination
        - pageNumber, pageSize: the values used after clamping
        - totalPages, hasPreviousPage, hasNextPage
    """
    try:
        sort_field = SortField.parse(sort_by)
    except ValueError as e:
        raise _reject(request, "list", ValidationError(str(e), details=[{"field": "sortBy", "message": str(e)}]))
    try:
        sort_direction = SortDirection.parse(sort_order)
    except ValueError as e:
        raise _reject(request, "list", ValidationError(str(e), details=[{"field": "sortOrder", "message": str(e)}]))

    query = MessageQuery(
        filter_text=message_filter,
        sort_field=sort_field,
        sort_direction=sort_direction,
        page_number=clamp_page_number(page_number),
        page_size=clamp_page_size(page_size, settings.MAX_PAGE_SIZE),
    )

    with _storage_errors_recorded(request, "list"):
        messages, total = list_messages(db, query)

    record_message_operation("list", "listed")
    log_message_data(request, operation="list", result="listed")
    return PagedMessagesResponse.from_page(messages, total, query.page_number, query.page_size)


@app.get(
    "/messages/{message_id}",
    response_model=MessageResponse,
    responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
)
async def get_message_route(
    request: Request,
    message_id: Annotated[int, Path(description="Message id")],
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Fetch a single message by id."""
    _check_message_id(request, "get", message_id)

    with _storage_errors_recorded(request, "get", message_id):
        message = get_message_by_id(db, message_id)
    if message is None:
        raise _not_found(request, "get", message_id, f"Message with ID {message_id} not found.")

    record_message_operation("get", "found")
    log_message_data(request, operation="get", result="found", message_id=message_id)
    return MessageResponse.model_validate(message)


@app.put(
    "/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
)
async def update_message_route(
    request: Request,
    message_id: Annotated[int, Path(description="Message id")],
    db: Session = Depends(get_db),
) -> Response:
    """
    Replace the content of a message.

    The body is the new content as a raw JSON string, e.g. "Updated text".
    """
    _check_message_id(request, "update", message_id)

    raw_body = await request.body()
    try:
        content = json.loads(raw_body) if raw_body.strip() else None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise _reject(request, "update", ValidationError(f"Invalid JSON: {e}"), message_id)
    if content is None:
        raise _reject(request, "update", ValidationError("Message data is null."), message_id)
    if not isinstance(content, str):
        raise _reject(request, "update", ValidationError("Message content must be a JSON string."), message_id)
    if not content.strip():
        raise _reject(request, "update", ValidationError("messageContent must not be empty"), message_id)

    with _storage_errors_recorded(request, "update", message_id):
        updated = update_message(db, message_id, content)
    if not updated:
        raise _not_found(request, "update", message_id, f"Message with ID {message_id} not found for update.")

    record_message_operation("update", "updated")
    log_message_data(request, operation="update", result="updated", message_id=message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete(
    "/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={**ERROR_RESPONSES, **NOT_FOUND_RESPONSE},
)
async def delete_message_route(
    request: Request,
    message_id: Annotated[int, Path(description="Message id")],
    db: Session = Depends(get_db),
) -> Response:
    """Permanently delete a message."""
    _check_message_id(request, "delete", message_id)

    with _storage_errors_recorded(request, "delete", message_id):
        deleted = delete_message(db, message_id)
    if not deleted:
        raise _not_found(request, "delete", message_id, f"Message with ID {message_id} not found for deletion.")

    record_message_operation("delete", "deleted")
    log_message_data(request, operation="delete", result="deleted", message_id=message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.

    - http_requests_total: HTTP requests by method, path, status
    - message_operations_total: message operations by outcome
    - request_latency_seconds: request latency histogram
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )

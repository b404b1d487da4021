import logging
from datetime import datetime, timedelta, timezone
from typing import Generator, Optional, Tuple

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from usermessages.config import settings
from usermessages.errors import StorageError

logger = logging.getLogger(__name__)


def _connect_args(database_url: str) -> dict:
    # SQLite connections are shared across FastAPI's threadpool
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {engine.url.render_as_string(hide_password=True)}")
    try:
        # Register models with Base.metadata
        from usermessages.models import Message  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and the messages table exists.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            if not inspect(conn).has_table("user_messages"):
                logger.error("Database schema not applied: 'user_messages' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Message Repository Functions
# =============================================================================

def create_message(
    db: Session,
    sender_number: int,
    recipient_number: int,
    message_content: str,
    status: Optional[str] = None,
):
    """
    Create a new message.

    Args:
        db: Database session
        sender_number: Sender phone number (validated by the caller)
        recipient_number: Recipient phone number (validated by the caller)
        message_content: Non-empty message text
        status: Initial status; DEFAULT_MESSAGE_STATUS when absent or blank

    Returns:
        The stored Message with its assigned id

    Raises:
        StorageError: if the insert fails
    """
    from usermessages.models import Message

    if status is None or not status.strip():
        status = settings.DEFAULT_MESSAGE_STATUS

    logger.info(f"Creating message: from={sender_number}, to={recipient_number}")

    now = utcnow()
    message = Message(
        sender_number=sender_number,
        recipient_number=recipient_number,
        message_content=message_content,
        status=status,
        submitted_on=now,
        modified_on=now,
    )
    try:
        db.add(message)
        db.commit()
        db.refresh(message)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create message: {e}")
        raise StorageError("Failed to store message") from e

    logger.info(f"Message created successfully: {message.id}")
    return message


def get_message_by_id(db: Session, message_id: int):
    """
    Retrieve a message by its ID.

    Returns:
        Message object if found, None otherwise
    """
    from usermessages.models import MAX_SQL_INTEGER, Message

    if message_id > MAX_SQL_INTEGER:
        logger.debug(f"Message lookup {message_id}: outside the id range")
        return None
    try:
        result = db.get(Message, message_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to look up message {message_id}: {e}")
        raise StorageError("Failed to retrieve message") from e
    logger.debug(f"Message lookup {message_id}: {'found' if result else 'not found'}")
    return result


def list_messages(db: Session, query) -> Tuple[list, int]:
    """
    Retrieve one page of messages.

    Args:
        db: Database session
        query: a validated MessageQuery

    Returns:
        Tuple of (messages on the page, total count matching the filter)
    """
    from usermessages.query import run_message_query

    logger.info(
        f"Querying messages: filter={query.filter_text!r}, sort={query.sort_field.value} "
        f"{query.sort_direction.value}, page={query.page_number}, size={query.page_size}"
    )
    try:
        messages, total = run_message_query(db, query)
    except SQLAlchemyError as e:
        logger.error(f"Failed to list messages: {e}")
        raise StorageError("Failed to retrieve messages") from e

    logger.info(f"Retrieved {len(messages)} of {total} total messages")
    return messages, total


def update_message(db: Session, message_id: int, message_content: str) -> bool:
    """
    Replace the content of a message and bump modified_on.

    modified_on always moves strictly forward, even when two writes land
    within the clock's resolution.

    Returns:
        True if the message existed and was updated, False otherwise
    """
    message = get_message_by_id(db, message_id)
    if message is None:
        return False

    now = utcnow()
    if now <= message.modified_on:
        now = message.modified_on + timedelta(microseconds=1)

    try:
        message.message_content = message_content
        message.modified_on = now
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update message {message_id}: {e}")
        raise StorageError("Failed to update message") from e

    logger.info(f"Message updated: {message_id}")
    return True


def delete_message(db: Session, message_id: int) -> bool:
    """
    Permanently delete a message.

    Returns:
        True if the message existed and was deleted, False otherwise
    """
    message = get_message_by_id(db, message_id)
    if message is None:
        return False

    try:
        db.delete(message)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to delete message {message_id}: {e}")
        raise StorageError("Failed to delete message") from e

    logger.info(f"Message deleted: {message_id}")
    return True

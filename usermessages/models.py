"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import BigInteger, Column, DateTime, Integer, String, Text

from usermessages.storage import Base

# Largest value a signed 64-bit INTEGER column (or LIMIT/OFFSET) accepts
MAX_SQL_INTEGER = 2**63 - 1


class Message(Base):
    """
    SQLAlchemy model for a message between two phone numbers.

    Table: user_messages
    Primary Key: id (assigned by the database, never reused by the API)

    Timestamps are naive UTC datetimes.
    """
    __tablename__ = "user_messages"
    # AUTOINCREMENT keeps SQLite from reusing the id of a deleted last row
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_number = Column(BigInteger, nullable=False)
    recipient_number = Column(BigInteger, nullable=False)
    message_content = Column(Text, nullable=False)
    status = Column(String(50), nullable=False)
    submitted_on = Column(DateTime, nullable=False, index=True)
    modified_on = Column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Message id={self.id} sender={self.sender_number} recipient={self.recipient_number}>"

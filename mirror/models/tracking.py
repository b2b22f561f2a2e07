"""
Append-only tracking records: visitor sessions, saved looks, click events.
Written by the public tracking endpoints, read by operators only.
"""

from sqlalchemy import String, Text, JSON, BigInteger
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class VisitorSession(RecordBase):
    __tablename__ = "visitor_sessions"

    device_id: Mapped[str] = mapped_column(String, nullable=True, index=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_agent: Mapped[str] = mapped_column(Text, nullable=True)
    initial_mode: Mapped[str] = mapped_column(String, nullable=True)


class SavedLook(RecordBase):
    __tablename__ = "saved_looks"

    device_id: Mapped[str] = mapped_column(String, nullable=True, index=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mode: Mapped[str] = mapped_column(String, nullable=False)
    mood: Mapped[str] = mapped_column(String, nullable=False)
    # URL from the storage backend (S3 or local path)
    image_url: Mapped[str] = mapped_column(Text, nullable=True)


class ClickEvent(RecordBase):
    __tablename__ = "click_events"

    device_id: Mapped[str] = mapped_column(String, nullable=True, index=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event: Mapped[str] = mapped_column(String, nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Index, text
from sqlalchemy.orm import relationship

from .db import Base

IMAGE_PLACEHOLDER = "[image]"


def utcnow() -> datetime:
    # naive UTC, SQLite drops tzinfo anyway
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    # Owned by the accounts side of the app; chat only reads it and stamps last_seen_at
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String, default="")
    username = Column(String, default="")
    email = Column(String, default="")
    phone_number = Column(String, index=True)
    last_seen_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)


class Thread(Base):
    __tablename__ = "chat_threads"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_ip = Column(String, default="")
    last_message_at = Column(DateTime, default=utcnow)
    last_message_text = Column(Text)
    unread_for_admin = Column(Integer, default=0, nullable=False)
    unread_for_user = Column(Integer, default=0, nullable=False)
    status = Column(String, default="open", nullable=False)  # open/closed
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", lazy="joined")

    __table_args__ = (
        # at most one open thread per user
        Index("uq_chat_threads_user_open", "user_id", unique=True,
              sqlite_where=text("status = 'open'"), postgresql_where=text("status = 'open'")),
    )


class Message(Base):
    __tablename__ = "chat_messages"
    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(Integer, ForeignKey("chat_threads.id"), nullable=False)
    sender_type = Column(String, nullable=False)   # user | admin
    sender_id = Column(Integer, nullable=False)
    text = Column(Text, default="")
    image_url = Column(String, default="")
    read_by_admin = Column(Boolean, default=False, nullable=False)
    read_by_user = Column(Boolean, default=False, nullable=False)
    is_deleted_for_user = Column(Boolean, default=False, nullable=False)
    deleted_for_user_at = Column(DateTime)
    is_deleted_for_admin = Column(Boolean, default=False, nullable=False)
    deleted_for_admin_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_chat_messages_thread_created", "thread_id", "created_at"),
        Index("ix_chat_messages_retention", "sender_type", "is_deleted_for_user", "created_at"),
    )

# supportchat/services/messages.py
from __future__ import annotations

from sqlalchemy import desc
from sqlalchemy.orm import Session

from supportchat.storage.models import Thread, Message, utcnow
from supportchat.services.visibility import Audience, SenderType, visible_filter, hidden_values
from supportchat.services import threads as thread_store


class EmptyMessage(ValueError):
    pass


def append(db: Session, thread: Thread, *, sender_type: str, sender_id: int,
           text: str = "", image_url: str = "") -> Message:
    """Persist a message and update the thread summary. Persisted before anyone is told about it."""
    text = (text or "").strip()
    image_url = image_url or ""
    if not text and not image_url:
        raise EmptyMessage("Message text is required")

    sender_type = SenderType(sender_type).value
    m = Message(
        thread_id=thread.id,
        sender_type=sender_type,
        sender_id=sender_id,
        text=text,
        image_url=image_url,
        # the sender has obviously seen their own message
        read_by_admin=(sender_type == SenderType.ADMIN.value),
        read_by_user=(sender_type == SenderType.USER.value),
    )
    db.add(m)
    db.commit()
    db.refresh(m)
    thread_store.touch(db, thread, sender_type, text=text, image_url=image_url, at=m.created_at)
    return m


def _page(db: Session, thread_id: int, audience: Audience, page: int, limit: int) -> list[Message]:
    page = max(1, page)
    limit = max(1, limit)
    # newest first so page 1 is always the latest messages...
    docs = (
        db.query(Message)
          .filter(Message.thread_id == thread_id, visible_filter(audience))
          .order_by(desc(Message.created_at), desc(Message.id))
          .offset((page - 1) * limit)
          .limit(limit)
          .all()
    )
    # ...then chronological for rendering
    docs.reverse()
    return docs


def list_for_user(db: Session, thread_id: int, page: int = 1, limit: int = 50) -> list[Message]:
    return _page(db, thread_id, Audience.USER, page, limit)


def list_for_admin(db: Session, thread_id: int, page: int = 1, limit: int = 50) -> list[Message]:
    return _page(db, thread_id, Audience.ADMIN, page, limit)


def latest_visible(db: Session, thread_id: int, audience: Audience) -> Message | None:
    return (
        db.query(Message)
          .filter(Message.thread_id == thread_id, visible_filter(audience))
          .order_by(desc(Message.created_at), desc(Message.id))
          .first()
    )


def hide_user_messages(db: Session, user_id: int) -> int:
    """Staff action: hide everything this user wrote from the user's own view."""
    n = (
        db.query(Message)
          .filter(Message.sender_id == user_id,
                  Message.sender_type == SenderType.USER.value,
                  visible_filter(Audience.USER))
          .update(hidden_values(Audience.USER, utcnow()), synchronize_session=False)
    )
    db.commit()
    return n


def hide_thread_for_admin(db: Session, thread_id: int) -> int:
    """Staff action: clear a thread from the staff view. Nothing else sets the admin flag."""
    n = (
        db.query(Message)
          .filter(Message.thread_id == thread_id, visible_filter(Audience.ADMIN))
          .update(hidden_values(Audience.ADMIN, utcnow()), synchronize_session=False)
    )
    db.commit()
    return n


def serialize_message(m: Message) -> dict:
    return {
        "id": m.id,
        "threadId": m.thread_id,
        "senderType": m.sender_type,
        "senderId": m.sender_id,
        "text": m.text or "",
        "imageUrl": m.image_url or "",
        "readByAdmin": m.read_by_admin,
        "readByUser": m.read_by_user,
        "isDeletedForUser": m.is_deleted_for_user,
        "deletedForUserAt": m.deleted_for_user_at.isoformat() if m.deleted_for_user_at else None,
        "isDeletedForAdmin": m.is_deleted_for_admin,
        "deletedForAdminAt": m.deleted_for_admin_at.isoformat() if m.deleted_for_admin_at else None,
        "createdAt": m.created_at.isoformat() if m.created_at else None,
    }


def event_payload(m: Message) -> dict:
    """The lighter shape pushed over the realtime channel."""
    return {
        "id": m.id,
        "threadId": m.thread_id,
        "senderType": m.sender_type,
        "text": m.text or "",
        "imageUrl": m.image_url or "",
        "createdAt": m.created_at.isoformat() if m.created_at else None,
    }

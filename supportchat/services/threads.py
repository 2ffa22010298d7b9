# supportchat/services/threads.py
from __future__ import annotations
import math
from datetime import datetime
from typing import Optional

from sqlalchemy import desc, false, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from supportchat.storage.models import Thread, Message, User, IMAGE_PLACEHOLDER, utcnow
from supportchat.services.visibility import SenderType


def get_thread(db: Session, thread_id: int) -> Thread | None:
    return db.get(Thread, thread_id)


def get_user_thread(db: Session, thread_id: int, user_id: int) -> Thread | None:
    """The thread, but only if it belongs to this user (foreign ids look like missing ones)."""
    t = db.get(Thread, thread_id)
    if not t or t.user_id != user_id:
        return None
    return t


def get_open_thread(db: Session, user_id: int) -> Thread | None:
    return (
        db.query(Thread)
          .filter(Thread.user_id == user_id, Thread.status == "open")
          .order_by(Thread.id.desc())
          .first()
    )


def open_or_get(db: Session, user_id: int, ip: str = "") -> Thread:
    """Reuse the user's open thread; only create one if none exists."""
    t = get_open_thread(db, user_id)
    if not t:
        t = Thread(user_id=user_id, user_ip=ip or "", status="open")
        db.add(t)
        try:
            db.commit()
        except IntegrityError:
            # a concurrent request opened it first (unique open-thread index)
            db.rollback()
            t = get_open_thread(db, user_id)
        else:
            db.refresh(t)
            return t
    if ip and not t.user_ip:
        t.user_ip = ip
        db.commit()
    return t


def touch(db: Session, thread: Thread, sender_type: str, text: str = "", image_url: str = "",
          at: Optional[datetime] = None) -> Thread:
    """Refresh the last-message summary and bump the other side's unread counter.

    ``at`` is the message's own ``created_at`` so the preview can later be compared to it.
    """
    now = utcnow()
    preview = text if text else (IMAGE_PLACEHOLDER if image_url else "")
    values = {"last_message_at": at or now, "last_message_text": preview, "updated_at": now}
    # single UPDATE so concurrent sends can't lose an increment
    if SenderType(sender_type) is SenderType.USER:
        values["unread_for_admin"] = Thread.unread_for_admin + 1
    else:
        values["unread_for_user"] = Thread.unread_for_user + 1
    db.execute(update(Thread).where(Thread.id == thread.id).values(**values))
    db.commit()
    db.refresh(thread)
    return thread


def mark_read_by_admin(db: Session, thread: Thread) -> Thread:
    thread.unread_for_admin = 0
    (
        db.query(Message)
          .filter(Message.thread_id == thread.id, Message.sender_type == SenderType.USER.value,
                  Message.read_by_admin == false())
          .update({Message.read_by_admin: True}, synchronize_session=False)
    )
    db.commit()
    return thread


def mark_read_by_user(db: Session, thread: Thread) -> Thread:
    thread.unread_for_user = 0
    (
        db.query(Message)
          .filter(Message.thread_id == thread.id, Message.sender_type == SenderType.ADMIN.value,
                  Message.read_by_user == false())
          .update({Message.read_by_user: True}, synchronize_session=False)
    )
    db.commit()
    return thread


def delete_thread(db: Session, thread: Thread) -> int:
    """Hard delete: the thread and every message in it. Returns messages removed."""
    n = (
        db.query(Message)
          .filter(Message.thread_id == thread.id)
          .delete(synchronize_session=False)
    )
    db.delete(thread)
    db.commit()
    return n


def user_summary(u: User | None) -> dict | None:
    if not u:
        return None
    return {
        "id": u.id,
        "fullName": u.full_name or "",
        "username": u.username or "",
        "email": u.email or "",
        "phoneNumber": u.phone_number or "",
    }


def serialize_thread(t: Thread, online: Optional[bool] = None) -> dict:
    d = {
        "id": t.id,
        "userId": t.user_id,
        "user": user_summary(t.user),
        "userIp": t.user_ip or "",
        "lastMessageAt": t.last_message_at.isoformat() if t.last_message_at else None,
        "lastMessageText": t.last_message_text,
        "unreadForAdmin": t.unread_for_admin,
        "unreadForUser": t.unread_for_user,
        "status": t.status,
        "createdAt": t.created_at.isoformat() if t.created_at else None,
    }
    if online is not None:
        d["userOnline"] = online
    return d


def list_threads(db: Session, *, page: int = 1, limit: int = 10, q: str = "", presence=None) -> dict:
    """Staff inbox: newest activity first, optional search over the preview text."""
    page = max(1, page)
    limit = max(1, limit)
    query = db.query(Thread)
    q = (q or "").strip()
    if q:
        # escape LIKE wildcards so the search is a plain substring match
        esc = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        query = query.filter(Thread.last_message_text.ilike(f"%{esc}%", escape="\\"))

    total = query.count()
    rows = (
        query.order_by(desc(Thread.last_message_at), desc(Thread.id))
             .offset((page - 1) * limit)
             .limit(limit)
             .all()
    )
    threads = [
        serialize_thread(t, online=(presence.is_online(t.user_id) if presence is not None else False))
        for t in rows
    ]
    return {
        "threads": threads,
        "pagination": {"current": page, "pages": math.ceil(total / limit), "total": total},
    }


def find_user_by_phone(db: Session, phone: str) -> User | None:
    return db.query(User).filter(User.phone_number == phone).first()


def stamp_last_seen(db: Session, user_id: int) -> None:
    u = db.get(User, user_id)
    if u:
        u.last_seen_at = utcnow()
        db.commit()

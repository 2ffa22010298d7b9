# supportchat/services/cleanup.py
"""
Message retention.

User-authored messages are hidden from the user once they are older than the
retention window. They stay visible to staff; nothing is physically removed.
"""
from __future__ import annotations
import asyncio
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from supportchat import settings
from supportchat.storage.models import Thread, Message, IMAGE_PLACEHOLDER, utcnow
from supportchat.services.visibility import Audience, SenderType, visible_filter, hidden_values
from supportchat.services.messages import latest_visible
from supportchat.util.logger import get_logger

log = get_logger("supportchat.cleanup")


def refresh_thread_previews(db: Session) -> int:
    """Point each thread's preview at its newest message the user can still see."""
    changed = 0
    for t in db.query(Thread).all():
        seen_at = t.last_message_at
        last = latest_visible(db, t.id, Audience.USER)
        if last:
            text = last.text or (IMAGE_PLACEHOLDER if last.image_url else "")
            if seen_at == last.created_at and t.last_message_text == text:
                continue
            values = {"last_message_at": last.created_at, "last_message_text": text}
        elif t.last_message_text is not None:
            # nothing left the user can open; keep last_message_at so staff ordering holds
            values = {"last_message_text": None}
        else:
            continue
        # a message sent since the read above moved last_message_at forward; leave that thread alone
        unchanged = Thread.last_message_at.is_(None) if seen_at is None else Thread.last_message_at <= seen_at
        res = db.execute(
            update(Thread).where(Thread.id == t.id, unchanged).values(**values),
            execution_options={"synchronize_session": False},
        )
        db.commit()
        changed += res.rowcount
    return changed


def sweep(db: Session, *, now: Optional[datetime] = None, retention_seconds: int = settings.RETENTION_SECONDS) -> int:
    """One retention pass. Returns how many messages were newly hidden."""
    now = now or utcnow()
    cutoff = now - timedelta(seconds=retention_seconds)

    # already-hidden rows are excluded, so their stamp is never rewritten
    hidden = (
        db.query(Message)
          .filter(Message.sender_type == SenderType.USER.value,
                  Message.created_at < cutoff,
                  visible_filter(Audience.USER))
          .update(hidden_values(Audience.USER, now), synchronize_session=False)
    )
    db.commit()
    if hidden:
        log.info({"event": "retention_hidden", "count": hidden, "cutoff": cutoff.isoformat()})

    refresh_thread_previews(db)
    return hidden


class MessageCleanupService:
    """Runs :func:`sweep` now and then every ``interval_seconds`` on the event loop."""

    def __init__(self, session_factory: sessionmaker, *,
                 interval_seconds: int = settings.CLEANUP_INTERVAL_SECONDS,
                 retention_seconds: int = settings.RETENTION_SECONDS):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.retention_seconds = retention_seconds
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            log.info("cleanup service already running")
            return
        log.info("cleanup service started (every %ss, retention %ss)", self.interval_seconds, self.retention_seconds)
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        log.info("cleanup service stopped")

    def run_once(self, now: Optional[datetime] = None) -> int:
        db = self.session_factory()
        try:
            return sweep(db, now=now, retention_seconds=self.retention_seconds)
        finally:
            db.close()

    async def _loop(self):
        while True:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                log.exception("cleanup cycle failed")
            await asyncio.sleep(self.interval_seconds)

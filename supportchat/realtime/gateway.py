# supportchat/realtime/gateway.py
"""
Realtime chat gateway.

Every connection is either an end-user or a staff operator. Users sit in their
personal room (``user:<id>``), staff in ``admins``; either side can join a
thread room to get its live traffic. A message is always committed before it
is broadcast, so a client reacting to ``chat:message`` can re-fetch history
over REST and find it.
"""
from __future__ import annotations
from typing import Optional, Tuple

from sqlalchemy.orm import sessionmaker

from supportchat.auth import InvalidToken, decode_admin_token, decode_user_token
from supportchat.realtime.presence import PresenceTracker
from supportchat.realtime.rooms import ADMINS_ROOM, Connection, RoomRegistry, Transport, thread_room, user_room
from supportchat.services import messages as message_store
from supportchat.services import threads as thread_store
from supportchat.storage.models import Message, Thread
from supportchat.util.logger import get_logger

log = get_logger("supportchat.gateway")

# client -> server
EV_JOIN_THREAD = "chat:joinThread"
EV_SEND = "chat:send"
EV_TYPING = "chat:typing"
# server -> client
EV_MESSAGE = "chat:message"
EV_THREAD_UPDATED = "chat:threadUpdated"
EV_THREAD_DELETED = "chat:threadDeleted"
EV_PRESENCE = "chat:presence"
EV_ERROR = "chat:error"


class GatewayError(Exception):
    """An event was refused; the message goes back to the sender only."""


def _thread_id(data: dict, required: bool = True) -> Optional[int]:
    raw = data.get("threadId")
    if raw in (None, ""):
        if required:
            raise GatewayError("threadId is required")
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise GatewayError("Thread not found") from None


class ChatGateway:
    def __init__(self, session_factory: sessionmaker, rooms: RoomRegistry, presence: PresenceTracker):
        self.session_factory = session_factory
        self.rooms = rooms
        self.presence = presence

    # ---------- handshake ----------
    @staticmethod
    def authenticate(token: str = "", admin_token: str = "") -> Tuple[str, int]:
        """Resolve handshake credentials to (role, id); staff token wins if both are sent."""
        if admin_token:
            return "admin", decode_admin_token(admin_token)
        if token:
            return "user", decode_user_token(token)
        raise InvalidToken("missing token")

    async def connect(self, transport: Transport, role: str, ident: int) -> Connection:
        if role == "admin":
            conn = Connection(transport=transport, role="admin", admin_id=ident)
            self.rooms.join(ADMINS_ROOM, conn)
        else:
            conn = Connection(transport=transport, role="user", user_id=ident)
            self.rooms.join(user_room(ident), conn)
            if self.presence.connect(ident):
                await self.rooms.emit(ADMINS_ROOM, EV_PRESENCE, {"userId": ident, "online": True})
        log.info({"event": "ws_connected", "conn": conn.id, "role": conn.role, "id": ident})
        return conn

    async def disconnect(self, conn: Connection) -> None:
        self.rooms.leave_all(conn)
        if conn.role == "user" and self.presence.disconnect(conn.user_id):
            db = self.session_factory()
            try:
                thread_store.stamp_last_seen(db, conn.user_id)
            except Exception:
                log.exception("failed to persist last_seen_at for user %s", conn.user_id)
            finally:
                db.close()
            await self.rooms.emit(ADMINS_ROOM, EV_PRESENCE, {"userId": conn.user_id, "online": False})
        log.info({"event": "ws_disconnected", "conn": conn.id, "role": conn.role})

    # ---------- inbound events ----------
    async def handle(self, conn: Connection, event: str, data: Optional[dict]) -> None:
        """Dispatch one client frame. Failures are reported to the sender and never close the socket."""
        data = data if isinstance(data, dict) else {}
        handler = {
            EV_JOIN_THREAD: self.join_thread,
            EV_SEND: self.send_message,
            EV_TYPING: self.typing,
        }.get(event)
        try:
            if handler is None:
                raise GatewayError(f"Unknown event: {event}")
            await handler(conn, data)
        except (GatewayError, ValueError) as e:
            await self._reply_error(conn, event, str(e))
        except Exception:
            log.exception("gateway event %s failed (conn=%s)", event, conn.id)
            await self._reply_error(conn, event, "Server error")

    async def _reply_error(self, conn: Connection, event: str, message: str) -> None:
        log.warning({"event": "ws_event_refused", "conn": conn.id, "in": event, "reason": message})
        try:
            await conn.send(EV_ERROR, {"event": event, "message": message})
        except Exception:
            log.warning("could not deliver error to conn %s", conn.id)

    def _load_thread(self, db, conn: Connection, thread_id: int) -> Thread:
        if conn.role == "user":
            t = thread_store.get_user_thread(db, thread_id, conn.user_id)
        else:
            t = thread_store.get_thread(db, thread_id)
        if not t:
            raise GatewayError("Thread not found")
        return t

    async def join_thread(self, conn: Connection, data: dict) -> None:
        thread_id = _thread_id(data)
        db = self.session_factory()
        try:
            self._load_thread(db, conn, thread_id)
        finally:
            db.close()
        self.rooms.join(thread_room(thread_id), conn)

    async def send_message(self, conn: Connection, data: dict) -> None:
        thread_id = _thread_id(data, required=(conn.role == "admin"))
        db = self.session_factory()
        try:
            if thread_id is None:
                # user without an active thread: open (or reuse) theirs and follow it
                thread = thread_store.open_or_get(db, conn.user_id)
                self.rooms.join(thread_room(thread.id), conn)
            else:
                thread = self._load_thread(db, conn, thread_id)
            msg = message_store.append(
                db, thread,
                sender_type=conn.role,
                sender_id=conn.sender_id,
                text=str(data.get("text") or ""),
            )
        finally:
            db.close()
        log.info({"event": "message_saved", "message": msg.id, "thread": thread.id, "sender": conn.role})
        await self.publish_message(thread, msg)

    async def typing(self, conn: Connection, data: dict) -> None:
        thread_id = _thread_id(data)
        room = thread_room(thread_id)
        if conn not in self.rooms.members(room):
            # only participants that joined the thread may signal typing
            raise GatewayError("Join the thread first")
        await self.rooms.emit(
            room, EV_TYPING,
            {"threadId": thread_id, "typing": bool(data.get("typing")), "senderType": conn.role},
            exclude=conn,
        )

    # ---------- outbound, also used by the REST routes ----------
    async def publish_message(self, thread: Thread, msg: Message) -> None:
        await self.rooms.emit(thread_room(thread.id), EV_MESSAGE, message_store.event_payload(msg))
        summary = {
            "threadId": thread.id,
            "lastMessageText": thread.last_message_text,
            "lastMessageAt": thread.last_message_at.isoformat() if thread.last_message_at else None,
        }
        await self.rooms.emit(ADMINS_ROOM, EV_THREAD_UPDATED, summary)
        await self.rooms.emit(user_room(thread.user_id), EV_THREAD_UPDATED, summary)

    async def publish_thread_deleted(self, thread_id: int) -> None:
        room = thread_room(thread_id)
        await self.rooms.emit(room, EV_THREAD_DELETED, {"threadId": thread_id})
        for conn in self.rooms.members(room):
            self.rooms.leave(room, conn)

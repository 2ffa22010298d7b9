# supportchat/realtime/rooms.py
"""
Room registry: room key -> live connections.

All mutation happens on the event loop, so there is no locking. Broadcasting
fans out with asyncio.gather and drops any connection whose send fails.
"""
from __future__ import annotations
import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Set

from supportchat.util.logger import get_logger

log = get_logger("supportchat.gateway")

ADMINS_ROOM = "admins"


def thread_room(thread_id) -> str:
    return f"thread:{thread_id}"


def user_room(user_id) -> str:
    return f"user:{user_id}"


class Transport(Protocol):
    async def send_json(self, data: Any) -> None: ...


_ids = itertools.count(1)


@dataclass(eq=False)
class Connection:
    """One authenticated realtime client. Exactly one of user_id/admin_id is set."""
    transport: Transport
    role: str                      # "user" | "admin"
    user_id: Optional[int] = None
    admin_id: Optional[int] = None
    id: int = field(default_factory=lambda: next(_ids))
    rooms: Set[str] = field(default_factory=set)

    @property
    def sender_id(self) -> int:
        return self.admin_id if self.role == "admin" else self.user_id

    async def send(self, event: str, data: dict) -> None:
        await self.transport.send_json({"event": event, "data": data})


class RoomRegistry:
    def __init__(self):
        self._rooms: Dict[str, Set[Connection]] = {}

    def join(self, room: str, conn: Connection) -> None:
        self._rooms.setdefault(room, set()).add(conn)
        conn.rooms.add(room)

    def leave(self, room: str, conn: Connection) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(conn)
            if not members:
                del self._rooms[room]
        conn.rooms.discard(room)

    def leave_all(self, conn: Connection) -> None:
        for room in list(conn.rooms):
            self.leave(room, conn)

    def members(self, room: str) -> Set[Connection]:
        return set(self._rooms.get(room, ()))

    async def emit(self, room: str, event: str, data: dict, exclude: Optional[Connection] = None) -> int:
        """Send to every member of the room. Returns how many sends succeeded."""
        targets = [c for c in self.members(room) if c is not exclude]
        if not targets:
            return 0
        results = await asyncio.gather(*(c.send(event, data) for c in targets), return_exceptions=True)
        ok = 0
        for conn, res in zip(targets, results):
            if isinstance(res, Exception):
                log.warning("dropping connection %s from rooms after send error: %s", conn.id, res)
                self.leave_all(conn)
            else:
                ok += 1
        return ok

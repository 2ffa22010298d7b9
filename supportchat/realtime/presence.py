# supportchat/realtime/presence.py
from typing import Dict


class PresenceTracker:
    """Live connection count per end-user. Process-local; a restart forgets everyone."""

    def __init__(self):
        self._counts: Dict[int, int] = {}

    def connect(self, user_id: int) -> bool:
        """Count a new connection. True when the user just came online."""
        n = self._counts.get(user_id, 0) + 1
        self._counts[user_id] = n
        return n == 1

    def disconnect(self, user_id: int) -> bool:
        """Count a closed connection. True when the user just went offline."""
        n = self._counts.get(user_id, 0)
        if n <= 1:
            if n == 0:
                return False
            del self._counts[user_id]
            return True
        self._counts[user_id] = n - 1
        return False

    def is_online(self, user_id: int) -> bool:
        return user_id in self._counts

    def online_users(self) -> list[int]:
        return list(self._counts)

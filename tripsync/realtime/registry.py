"""
Process-local presence registry: which users are connected to which group.

Each joined channel counts once, so a user with several sockets in a group
stays online until the last one goes. This is a hint for UI presence only.
Nothing persisted depends on it and it is lost on restart.
"""

import threading
from typing import Dict, Set


class ConnectionRegistry:
    def __init__(self):
        # group_id -> user_id -> joined channel count
        self._groups: Dict[int, Dict[int, int]] = {}
        self._lock = threading.Lock()

    def add(self, group_id: int, user_id: int) -> None:
        """Record one more channel of the user in the group"""
        with self._lock:
            users = self._groups.setdefault(group_id, {})
            users[user_id] = users.get(user_id, 0) + 1

    def discard(self, group_id: int, user_id: int) -> None:
        """Forget one channel of the user; the user goes offline with the last"""
        with self._lock:
            users = self._groups.get(group_id)
            if users is None or user_id not in users:
                return
            users[user_id] -= 1
            if users[user_id] <= 0:
                del users[user_id]
            if not users:
                del self._groups[group_id]

    def remove_user(self, group_id: int, user_id: int) -> None:
        """Drop every channel of a user who left the group"""
        with self._lock:
            users = self._groups.get(group_id)
            if users is None:
                return
            users.pop(user_id, None)
            if not users:
                del self._groups[group_id]

    def drop_group(self, group_id: int) -> None:
        with self._lock:
            self._groups.pop(group_id, None)

    def users(self, group_id: int) -> Set[int]:
        with self._lock:
            return set(self._groups.get(group_id, ()))

    def is_connected(self, group_id: int, user_id: int) -> bool:
        with self._lock:
            return user_id in self._groups.get(group_id, ())

    def is_open(self, group_id: int) -> bool:
        with self._lock:
            return bool(self._groups.get(group_id))

    def snapshot(self) -> Dict[int, int]:
        """Connected user count per group"""
        with self._lock:
            return {group_id: len(users) for group_id, users in self._groups.items()}

    def clear(self) -> None:
        with self._lock:
            self._groups.clear()

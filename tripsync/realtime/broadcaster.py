"""
Room-based WebSocket broadcaster for real-time group updates
"""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

from fastapi import WebSocket

logger = logging.getLogger(__name__)

class Channel:
    """A single live WebSocket connection and the rooms it sits in"""

    def __init__(self, websocket: WebSocket, user_id: Optional[int] = None, channel_id: Optional[str] = None):
        self.id = channel_id or uuid.uuid4().hex
        self.websocket = websocket
        # authenticated at handshake
        self.user_id = user_id
        # group_id -> user id the channel joined that room as
        self.groups: Dict[int, int] = {}

    async def send(self, message: dict) -> None:
        await self.websocket.send_text(json.dumps(message, default=str))

    def __repr__(self) -> str:
        return f"Channel({self.id}, user={self.user_id}, groups={sorted(self.groups)})"

class RoomBroadcaster:
    """Owns every live channel, grouped into one room per group id.

    One instance lives for the whole application; it is created at startup
    and `shutdown()` closes whatever is still connected.
    """

    def __init__(self):
        # group_id -> channel_id -> channel
        self.rooms: Dict[int, Dict[str, Channel]] = {}
        self.channels: Dict[str, Channel] = {}
        self._room_locks: Dict[int, asyncio.Lock] = {}
        # holders plus waiters per room lock
        self._room_lock_users: Dict[int, int] = {}
        self.running = False

    async def start(self) -> None:
        self.running = True
        logger.info("Room broadcaster started")

    async def shutdown(self) -> None:
        """Close every remaining connection and forget all rooms"""
        self.running = False
        for channel in list(self.channels.values()):
            try:
                await channel.websocket.close(code=1001, reason="Server shutting down")
            except Exception as e:
                logger.debug(f"Error closing channel {channel.id} on shutdown: {e}")
        self.rooms.clear()
        self.channels.clear()
        self._room_locks.clear()
        self._room_lock_users.clear()
        logger.info("Room broadcaster stopped")

    async def connect(self, websocket: WebSocket, user_id: Optional[int] = None) -> Channel:
        """Accept the WebSocket and register it as a channel of `user_id`"""
        await websocket.accept()
        channel = Channel(websocket, user_id)
        self.channels[channel.id] = channel
        logger.info(f"Channel {channel.id} connected for user {user_id}. Total channels: {len(self.channels)}")
        return channel

    def disconnect(self, channel: Channel) -> List[Tuple[int, int]]:
        """Drop the channel from every room; returns the (group, user) pairs it held"""
        memberships = list(channel.groups.items())
        for group_id in list(channel.groups):
            self.leave_room(channel, group_id)
        self.channels.pop(channel.id, None)
        logger.info(f"Channel {channel.id} disconnected. Remaining channels: {len(self.channels)}")
        return memberships

    def join_room(self, channel: Channel, group_id: int, user_id: int) -> None:
        self.rooms.setdefault(group_id, {})[channel.id] = channel
        channel.groups[group_id] = user_id
        logger.info(f"Channel {channel.id} joined room {group_id}. Room size: {len(self.rooms[group_id])}")

    def leave_room(self, channel: Channel, group_id: int) -> None:
        channel.groups.pop(group_id, None)
        room = self.rooms.get(group_id)
        if room is None:
            return
        room.pop(channel.id, None)
        # Clean up empty rooms
        if not room:
            del self.rooms[group_id]

    def close_room(self, group_id: int) -> List[Channel]:
        """Detach every channel from the room, e.g. after the group is deleted"""
        room = self.rooms.pop(group_id, {})
        for channel in room.values():
            channel.groups.pop(group_id, None)
        logger.info(f"Room {group_id} closed, {len(room)} channels detached")
        return list(room.values())

    @asynccontextmanager
    async def room_lock(self, group_id: int) -> AsyncIterator[None]:
        """Serializes mutate-then-broadcast sequences within one room.

        The lock is dropped once nobody holds or waits on it, so only rooms
        with work in flight keep one.
        """
        lock = self._room_locks.get(group_id)
        if lock is None:
            lock = self._room_locks[group_id] = asyncio.Lock()
        self._room_lock_users[group_id] = self._room_lock_users.get(group_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._room_lock_users.get(group_id, 1) - 1
            if remaining > 0:
                self._room_lock_users[group_id] = remaining
            else:
                self._room_lock_users.pop(group_id, None)
                if self._room_locks.get(group_id) is lock:
                    del self._room_locks[group_id]

    def active_room_locks(self) -> int:
        return len(self._room_locks)

    def in_room(self, channel: Channel, group_id: int) -> bool:
        return channel.id in self.rooms.get(group_id, {})

    def user_channels(self, group_id: int, user_id: int) -> List[Channel]:
        """Channels in the room that joined it as `user_id`"""
        return [
            channel for channel in self.rooms.get(group_id, {}).values()
            if channel.groups.get(group_id) == user_id
        ]

    async def send_personal_message(self, message: dict, channel: Channel) -> None:
        """Send message to one channel"""
        try:
            await channel.send(message)
        except Exception as e:
            logger.error(f"Error sending personal message to {channel.id}: {e}")

    async def broadcast_to_room(self, group_id: int, message: dict) -> int:
        """Send message to every channel in the room; returns deliveries"""
        if group_id not in self.rooms:
            logger.debug(f"No active channels for group {group_id}")
            return 0

        # Copy so sends can't race with joins/leaves
        channels = list(self.rooms[group_id].values())

        delivered = 0
        dead = []
        for channel in channels:
            try:
                await channel.send(message)
                delivered += 1
            except Exception as e:
                logger.error(f"Error broadcasting to channel {channel.id}: {e}")
                dead.append(channel)

        # channel.groups keeps the entry so disconnect still reports it for presence
        room = self.rooms.get(group_id, {})
        for channel in dead:
            room.pop(channel.id, None)
        if not room:
            self.rooms.pop(group_id, None)

        return delivered

    def get_connection_count(self, group_id: int) -> int:
        return len(self.rooms.get(group_id, {}))

    def get_all_connection_counts(self) -> Dict[int, int]:
        return {group_id: len(room) for group_id, room in self.rooms.items()}

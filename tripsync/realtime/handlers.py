"""
Realtime event handlers.

Each inbound message runs its store work in the threadpool, so the store
connection is released before anything is broadcast. The room lock is held
across "mutate, then broadcast", which keeps events within a room in commit
order. Failures are reported to the requesting channel only.
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from tripsync.core.errors import (
    NotAuthenticated,
    NotAuthorized,
    NotFound,
    TripSyncError,
    ValidationFailed,
)
from tripsync.realtime.broadcaster import Channel, RoomBroadcaster
from tripsync.realtime.registry import ConnectionRegistry
from tripsync.schemas.realtime import (
    CalendarSet,
    GroupRef,
    GroupUserRef,
    InboundMessage,
    TripCreatedNotice,
)
from tripsync.services.calendar_service import CalendarService
from tripsync.services.group_service import GroupService
from tripsync.services.membership_service import MembershipService
from tripsync.services.trip_service import TripService

logger = logging.getLogger(__name__)

Handler = Callable[[Channel, dict], Awaitable[None]]

def _parse(model, message: dict):
    try:
        return model.model_validate(message)
    except ValidationError as exc:
        raise ValidationFailed("Invalid message payload", exc.errors(include_url=False)) from exc

def _acting_user(channel: Channel, claimed: Optional[int]) -> int:
    """The channel's authenticated user; a payload may not speak for anyone else"""
    if channel.user_id is None:
        raise NotAuthenticated()
    if claimed is not None and claimed != channel.user_id:
        raise NotAuthorized("userId does not match the connected user")
    return channel.user_id

def _member_payload(member: Dict) -> Dict:
    return {
        "userId": member["user_id"],
        "nickname": member["nickname"],
        "profileImage": member["profile_image"],
        "role": member["role"],
    }

def _calendar_payload(entry: Dict) -> Dict:
    return {
        "userId": entry["user_id"],
        "nickname": entry["nickname"],
        "dateRange": {"start": entry["start"], "end": entry["end"]},
    }

class GroupEventHandlers:
    """Binds inbound realtime events to group mutations and broadcasts"""

    def __init__(
        self,
        broadcaster: RoomBroadcaster,
        registry: ConnectionRegistry,
        groups: GroupService,
        membership: MembershipService,
        calendar: CalendarService,
        trips: TripService,
    ):
        self.broadcaster = broadcaster
        self.registry = registry
        self.groups = groups
        self.membership = membership
        self.calendar = calendar
        self.trips = trips
        self.handlers: Dict[str, Handler] = {
            "joinGroup": self.join_group,
            "leaveGroup": self.leave_group,
            "deleteGroup": self.delete_group,
            "getMembers": self.get_members,
            "setCalendarDate": self.set_calendar_date,
            "clearCalendarDate": self.clear_calendar_date,
            "getCalendarDates": self.get_calendar_dates,
            "tripCreated": self.trip_created,
            "ping": self.ping,
        }

    async def dispatch(self, channel: Channel, message: dict) -> None:
        """Route one client message; errors go back to this channel only"""
        event = message.get("type") if isinstance(message, dict) else None
        try:
            envelope = _parse(InboundMessage, message)
            event = envelope.type
            handler = self.handlers.get(event)
            if handler is None:
                raise ValidationFailed(f"Unknown event type: {event}")
            await handler(channel, message)
        except TripSyncError as exc:
            logger.warning(f"{event} failed for channel {channel.id}: {exc.kind}: {exc.message}")
            await self.emit_error(channel, event, exc)
        except Exception as exc:
            logger.exception(f"Unexpected error handling {event} for channel {channel.id}")
            await self.emit_error(channel, event, TripSyncError(details=str(exc)))

    async def emit_error(self, channel: Channel, event, exc: TripSyncError) -> None:
        await self.broadcaster.send_personal_message({
            "type": "error",
            "event": event,
            **exc.to_dict(),
        }, channel)

    async def join_group(self, channel: Channel, message: dict) -> None:
        ref = _parse(GroupUserRef, message)
        user_id = _acting_user(channel, ref.user_id)
        async with self.broadcaster.room_lock(ref.group_id):
            result = await run_in_threadpool(self.membership.join_group, ref.group_id, user_id)

            # a channel counts once towards presence, however often it joins
            if not self.broadcaster.in_room(channel, ref.group_id):
                self.broadcaster.join_room(channel, ref.group_id, user_id)
                self.registry.add(ref.group_id, user_id)

            if result["joined"]:
                await self.broadcaster.broadcast_to_room(ref.group_id, {
                    "type": "memberJoined",
                    "groupId": ref.group_id,
                    "newMember": _member_payload(result["member"]),
                    "message": "A new member joined the group.",
                })

    async def leave_group(self, channel: Channel, message: dict) -> None:
        ref = _parse(GroupUserRef, message)
        user_id = _acting_user(channel, ref.user_id)
        async with self.broadcaster.room_lock(ref.group_id):
            result = await run_in_threadpool(self.membership.leave_group, ref.group_id, user_id)

            if result["group_deleted"]:
                await self._announce_group_deleted(ref.group_id, "The host left, so the group was deleted.")
                return

            self._detach_user(ref.group_id, user_id)
            await self.broadcaster.broadcast_to_room(ref.group_id, {
                "type": "memberLeft",
                "groupId": ref.group_id,
                "userId": user_id,
                "message": "A member left the group.",
            })
            if result["calendar_cleared"]:
                await self.broadcaster.broadcast_to_room(ref.group_id, {
                    "type": "calendarDateCleared",
                    "groupId": ref.group_id,
                    "userId": user_id,
                })

    async def delete_group(self, channel: Channel, message: dict) -> None:
        ref = _parse(GroupUserRef, message)
        user_id = _acting_user(channel, ref.user_id)
        async with self.broadcaster.room_lock(ref.group_id):
            await run_in_threadpool(self.membership.delete_group, ref.group_id, user_id)
            await self._announce_group_deleted(ref.group_id, "The host deleted the group.")

    async def _announce_group_deleted(self, group_id: int, text: str) -> None:
        await self.broadcaster.broadcast_to_room(group_id, {
            "type": "groupDeleted",
            "groupId": group_id,
            "message": text,
        })
        self.broadcaster.close_room(group_id)
        self.registry.drop_group(group_id)

    def _detach_user(self, group_id: int, user_id: int) -> None:
        """Take every channel of a departed member out of the room"""
        for channel in self.broadcaster.user_channels(group_id, user_id):
            self.broadcaster.leave_room(channel, group_id)
        self.registry.remove_user(group_id, user_id)

    async def announce_departure(self, user_id: int, result: Dict) -> None:
        """Tell a room about a departure that happened outside the socket (HTTP)"""
        group_id = result["group_id"]
        async with self.broadcaster.room_lock(group_id):
            if result["group_deleted"]:
                await self._announce_group_deleted(group_id, "The last member left, so the group was deleted.")
                return

            self._detach_user(group_id, user_id)
            await self.broadcaster.broadcast_to_room(group_id, {
                "type": "memberLeft",
                "groupId": group_id,
                "userId": user_id,
                "newHostId": result.get("new_host_id"),
                "message": "A member left the group.",
            })

    async def get_members(self, channel: Channel, message: dict) -> None:
        ref = _parse(GroupRef, message)
        members = await run_in_threadpool(self.groups.get_group_members, ref.group_id)
        online = self.registry.users(ref.group_id)
        await self.broadcaster.send_personal_message({
            "type": "membersList",
            "groupId": ref.group_id,
            "members": [
                {**_member_payload(member), "online": member["user_id"] in online}
                for member in members
            ],
        }, channel)

    async def set_calendar_date(self, channel: Channel, message: dict) -> None:
        data = _parse(CalendarSet, message)
        user_id = _acting_user(channel, data.user_id)
        async with self.broadcaster.room_lock(data.group_id):
            entry = await run_in_threadpool(
                self.calendar.set_date,
                data.group_id,
                user_id,
                data.date_range.start,
                data.date_range.end,
            )
            calendar_data = _calendar_payload(entry)
            await self.broadcaster.broadcast_to_room(data.group_id, {
                "type": "calendarUpdated",
                "groupId": data.group_id,
                "calendarData": calendar_data,
            })
        await self.broadcaster.send_personal_message({
            "type": "calendarUpdateSuccess",
            "groupId": data.group_id,
            "calendarData": calendar_data,
            "message": "Your dates were updated.",
        }, channel)

    async def clear_calendar_date(self, channel: Channel, message: dict) -> None:
        ref = _parse(GroupUserRef, message)
        user_id = _acting_user(channel, ref.user_id)
        async with self.broadcaster.room_lock(ref.group_id):
            removed = await run_in_threadpool(self.calendar.clear_date, ref.group_id, user_id)
            if not removed:
                return
            await self.broadcaster.broadcast_to_room(ref.group_id, {
                "type": "calendarDateCleared",
                "groupId": ref.group_id,
                "userId": user_id,
            })
        await self.broadcaster.send_personal_message({
            "type": "calendarClearSuccess",
            "groupId": ref.group_id,
            "userId": user_id,
            "message": "Your dates were cleared.",
        }, channel)

    async def get_calendar_dates(self, channel: Channel, message: dict) -> None:
        ref = _parse(GroupRef, message)
        entries = await run_in_threadpool(self.calendar.list_dates, ref.group_id)
        await self.broadcaster.send_personal_message({
            "type": "calendarDatesList",
            "groupId": ref.group_id,
            "calendarData": [_calendar_payload(entry) for entry in entries],
        }, channel)

    async def trip_created(self, channel: Channel, message: dict) -> None:
        notice = _parse(TripCreatedNotice, message)
        trip = await run_in_threadpool(self.trips.get_trip, notice.trip_id)
        if trip["group_id"] != notice.group_id:
            raise NotFound("Trip")
        await self.broadcaster.broadcast_to_room(notice.group_id, {
            "type": "redirectToTrip",
            "groupId": notice.group_id,
            "tripId": notice.trip_id,
            "message": "The trip schedule is confirmed.",
        })

    async def ping(self, channel: Channel, message: dict) -> None:
        await self.broadcaster.send_personal_message({
            "type": "pong",
            "timestamp": message.get("timestamp"),
        }, channel)

    async def on_disconnect(self, channel: Channel) -> None:
        """Transport closed: presence only, persisted membership is untouched"""
        for group_id, user_id in self.broadcaster.disconnect(channel):
            self.registry.discard(group_id, user_id)
            await self.broadcaster.broadcast_to_room(group_id, {
                "type": "userDisconnected",
                "groupId": group_id,
                "userId": user_id,
                "socketId": channel.id,
                "message": "A member's connection was lost.",
                "timestamp": datetime.utcnow().isoformat(),
            })

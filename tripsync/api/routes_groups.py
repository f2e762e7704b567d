"""
Group API routes
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from tripsync.api.deps import get_group_service
from tripsync.schemas.group import GroupCreate, GroupImageUpdate
from tripsync.services.group_service import GroupService
from tripsync.utils.responses import success_response
from tripsync.utils.security import get_current_user_id

router = APIRouter()

@router.post("")
async def create_group(
    group_data: GroupCreate,
    user_id: int = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Create a group with the caller as host"""
    group = await run_in_threadpool(groups.create_group, group_data.name, user_id)
    return success_response(
        message="Group created successfully",
        data=group,
        status_code=201
    )

@router.get("/invites/{code}")
async def resolve_invite(
    code: str,
    user_id: int = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Look up the group an invite code points to"""
    invite = await run_in_threadpool(groups.resolve_invite, code)
    return success_response(message="Invite resolved", data=invite)

@router.get("/{group_id}")
async def get_group_details(
    group_id: int,
    user_id: int = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Get group information"""
    group = await run_in_threadpool(groups.get_group_details, group_id)
    return success_response(message="Group details retrieved", data=group)

@router.get("/{group_id}/members")
async def get_group_members(
    group_id: int,
    user_id: int = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """List group members, host first"""
    members = await run_in_threadpool(groups.get_group_members, group_id)
    return success_response(message="Group members retrieved", data=members)

@router.post("/{group_id}/invites")
async def create_invite(
    group_id: int,
    user_id: int = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    """Create an invite code for the group"""
    invite = await run_in_threadpool(groups.create_invite, group_id, user_id)
    return success_response(message="Invite created", data=invite, status_code=201)

@router.put("/{group_id}/thumbnail")
async def set_thumbnail(
    group_id: int,
    image: GroupImageUpdate,
    user_id: int = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    data = await run_in_threadpool(groups.set_thumbnail, group_id, user_id, image.url)
    return success_response(message="Thumbnail updated", data=data)

@router.put("/{group_id}/background")
async def set_background(
    group_id: int,
    image: GroupImageUpdate,
    user_id: int = Depends(get_current_user_id),
    groups: GroupService = Depends(get_group_service)
):
    data = await run_in_threadpool(groups.set_background, group_id, user_id, image.url)
    return success_response(message="Background updated", data=data)

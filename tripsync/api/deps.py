"""
Dependency accessors for the services held on app.state
"""

from fastapi import Request

from tripsync.realtime.handlers import GroupEventHandlers
from tripsync.services.group_service import GroupService
from tripsync.services.membership_service import MembershipService
from tripsync.services.payment_service import PaymentService
from tripsync.services.trip_service import TripService

def get_group_service(request: Request) -> GroupService:
    return request.app.state.group_service

def get_membership_service(request: Request) -> MembershipService:
    return request.app.state.membership_service

def get_trip_service(request: Request) -> TripService:
    return request.app.state.trip_service

def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service

def get_event_handlers(request: Request) -> GroupEventHandlers:
    return request.app.state.event_handlers

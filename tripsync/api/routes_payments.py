"""
Payment API routes
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from tripsync.api.deps import get_payment_service
from tripsync.schemas.payment import PaymentSaveRequest, PaymentUpdateRequest
from tripsync.services.payment_service import PaymentService
from tripsync.utils.responses import success_response
from tripsync.utils.security import get_current_user_id

router = APIRouter()

@router.post("")
async def save_payments(
    request: PaymentSaveRequest,
    user_id: int = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service)
):
    """Save several payments atomically"""
    data = await run_in_threadpool(payments.save_payments, user_id, request.payments)
    return success_response(message="Payments saved", data=data, status_code=201)

@router.put("")
async def update_payments(
    request: PaymentUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service)
):
    """Update several payments atomically"""
    data = await run_in_threadpool(payments.update_payments, user_id, request.payments)
    return success_response(message="Payments updated", data=data)

@router.get("/trips/{trip_id}")
async def list_trip_payments(
    trip_id: int,
    user_id: int = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service)
):
    data = await run_in_threadpool(payments.list_payments, trip_id, user_id)
    return success_response(message="Payments retrieved", data=data)

@router.get("/trips/{trip_id}/members")
async def list_trip_members(
    trip_id: int,
    user_id: int = Depends(get_current_user_id),
    payments: PaymentService = Depends(get_payment_service)
):
    """Members available for splitting a payment"""
    data = await run_in_threadpool(payments.trip_members, trip_id, user_id)
    return success_response(message="Members retrieved", data=data)

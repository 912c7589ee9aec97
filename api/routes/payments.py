"""
Order backend routes.

Creates gateway orders, verifies checkout signatures and fetches payments
through the application service. Keep this thin: no SDK details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_payment_service
from application.dtos.payments import CreateOrderRequest, VerifyPaymentRequest
from application.services.payment_service import PaymentService
from core.response import success_response


router = APIRouter(tags=["Payments"])


@router.post("/create-order", summary="Create gateway order")
async def create_order(payload: CreateOrderRequest, service: PaymentService = Depends(get_payment_service)):
    order = await service.create_order(payload)
    return success_response(
        data={"id": order.id, "amount": order.amount, "currency": order.currency},
        message="Order created",
    )


@router.post("/verify-payment", summary="Verify checkout signature")
async def verify_payment(payload: VerifyPaymentRequest, service: PaymentService = Depends(get_payment_service)):
    result = service.verify_payment(payload)
    return success_response(data=result.model_dump(), message="Payment verified" if result.valid else "Invalid signature")


@router.get("/payment/{payment_id}", summary="Fetch payment")
async def fetch_payment(payment_id: str, service: PaymentService = Depends(get_payment_service)):
    details = await service.fetch_payment(payment_id)
    return success_response(data=details.model_dump(), message="Payment details")

"""
API依赖项 - 订单后端服务与按浏览器 profile 划分的支付协调器
"""
from typing import Optional

from fastapi import Header, Request

from application.services.payment_coordinator import PaymentCoordinator, PaymentCoordinatorRegistry
from application.services.payment_service import PaymentService
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


def _registry(request: Request) -> PaymentCoordinatorRegistry:
    registry = getattr(request.app.state, "coordinators", None)
    if registry is None:
        raise RuntimeError("Coordinator registry not initialized. Ensure lifespan sets app.state.coordinators.")
    return registry


async def get_payment_service(request: Request) -> PaymentService:
    service: Optional[PaymentService] = getattr(request.app.state, "payment_service", None)
    if service is None:
        raise BusinessException(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Payment gateway is not configured",
            error_type="ServiceUnavailable",
        )
    return service


async def get_payment_coordinator(
    request: Request,
    profile_id: str = Header(..., alias="X-Profile-ID", min_length=1, max_length=128),
) -> PaymentCoordinator:
    return await _registry(request).get(profile_id)

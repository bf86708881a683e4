# kudimall/api/boosts.py
# Роуты продвижения: планы, заявки продавцов, решения админа, лимит и витрина.
from typing import Optional

from fastapi import APIRouter, Depends, status

from kudimall.api.deps import get_promotion_service
from kudimall.api.schemas import BoostLimitIn, BoostRequestIn
from kudimall.core import security
from kudimall.models.user import RoleEnum, User, Vendor
from kudimall.services.promotion import PromotionService

router = APIRouter()
admin_only = security.require_role(RoleEnum.admin)


@router.get("/boosts/plans")
def active_plans(service: PromotionService = Depends(get_promotion_service)):
    return {"plans": service.active_plans()}


@router.post("/boosts/requests", status_code=status.HTTP_201_CREATED)
def request_boost(
    body: BoostRequestIn,
    vendor: Vendor = Depends(security.get_current_vendor),
    service: PromotionService = Depends(get_promotion_service),
):
    request_id = service.request_boost(body.product_id, vendor.id, body.plan_id, user_id=vendor.user_id)
    return {"id": request_id, "request_status": "pending"}


@router.get("/admin/boosts/requests")
def list_requests(
    request_status: Optional[str] = None,
    page: int = 1,
    _admin: User = Depends(admin_only),
    service: PromotionService = Depends(get_promotion_service),
):
    return service.list_requests(status=request_status, page=page)


@router.post("/admin/boosts/requests/{request_id}/approve")
def approve_boost(
    request_id: int,
    _admin: User = Depends(admin_only),
    service: PromotionService = Depends(get_promotion_service),
):
    """Одобрять только после подтверждения оплаты вне системы."""
    boosted_until = service.approve_boost(request_id)
    return {"id": request_id, "request_status": "approved", "boosted_until": boosted_until}


@router.post("/admin/boosts/requests/{request_id}/reject")
def reject_boost(
    request_id: int,
    _admin: User = Depends(admin_only),
    service: PromotionService = Depends(get_promotion_service),
):
    service.reject_boost(request_id)
    return {"id": request_id, "request_status": "rejected"}


@router.get("/admin/boosts/limit")
def get_boost_limit(
    _admin: User = Depends(admin_only),
    service: PromotionService = Depends(get_promotion_service),
):
    return {"limit": service.boost_limit()}


@router.put("/admin/boosts/limit")
def set_boost_limit(
    body: BoostLimitIn,
    _admin: User = Depends(admin_only),
    service: PromotionService = Depends(get_promotion_service),
):
    return {"limit": service.set_boost_limit(body.limit)}


@router.get("/products/featured")
def featured_products(
    limit: Optional[int] = None,
    service: PromotionService = Depends(get_promotion_service),
):
    return {"products": service.featured_products(limit)}


@router.get("/products/{product_id}/promotion")
def promotion_state(product_id: int, service: PromotionService = Depends(get_promotion_service)):
    return service.promotion_state(product_id)

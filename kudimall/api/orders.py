# kudimall/api/orders.py
# Роуты оформления заказа, статусов выполнения и ручной сверки остатков.
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from kudimall.api.deps import get_order_service
from kudimall.api.schemas import OrderStatusIn, PlaceOrderIn
from kudimall.core import security
from kudimall.models.user import RoleEnum, User, Vendor
from kudimall.services.orders import CartLine, OrderService

router = APIRouter()


@router.post("/orders", status_code=status.HTTP_201_CREATED)
def place_order(
    body: PlaceOrderIn,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(security.get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """
    Оформление заказа после ответа платёжного источника.
    Уведомление о заказе уходит фоновой задачей после ответа.
    """
    placed = service.place_order(
        user_id=current_user.id,
        items=[CartLine(l.product_id, l.quantity, l.price_snapshot) for l in body.items],
        shipping_address=body.shipping_address.model_dump(),
        payment_method=body.payment_method,
        transaction_id=body.transaction_id,
        initial_status=body.status,
        schedule=background_tasks.add_task,
    )
    return {
        "id": placed.order_id,
        "total_amount": placed.total_amount,
        "status": placed.status.value,
        "inventory_status": placed.inventory_status.value,
        "inventory_failures": placed.inventory_failures,
    }


@router.get("/orders/{order_id}")
def get_order(
    order_id: int,
    current_user: User = Depends(security.get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = service.get_order(order_id)
    if order.user_id != current_user.id and current_user.role != RoleEnum.admin:
        raise HTTPException(status_code=403, detail="Not your order")
    return {
        "id": order.order_id,
        "user_id": order.user_id,
        "total_amount": order.total_amount,
        "status": order.status.value,
        "order_date": order.order_date,
        "shipping_address": order.shipping_address,
        "payment_method": order.payment_method.value,
        "transaction_id": order.transaction_id,
        "inventory_status": order.inventory_status.value,
        "inventory_failures": order.inventory_failures,
        "items": order.items,
    }


@router.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: int,
    body: OrderStatusIn,
    current_user: User = Depends(security.require_role(RoleEnum.vendor, RoleEnum.admin)),
    db: Session = Depends(security.get_db),
    service: OrderService = Depends(get_order_service),
):
    """Продавец меняет статус только заказов со своими товарами, админ любых."""
    vendor_id = None
    if current_user.role == RoleEnum.vendor:
        vendor = db.query(Vendor).filter(Vendor.user_id == current_user.id).first()
        if vendor is None:
            raise HTTPException(status_code=403, detail="Vendor profile not found")
        vendor_id = vendor.id
    new_status = service.update_status(order_id, body.status, vendor_id=vendor_id)
    return {"id": order_id, "status": new_status.value}


@router.get("/admin/orders/reconciliation")
def orders_needing_reconciliation(
    _admin: User = Depends(security.require_role(RoleEnum.admin)),
    service: OrderService = Depends(get_order_service),
):
    return {"orders": service.orders_needing_reconciliation()}


@router.post("/admin/orders/{order_id}/reconcile")
def mark_reconciled(
    order_id: int,
    _admin: User = Depends(security.require_role(RoleEnum.admin)),
    service: OrderService = Depends(get_order_service),
):
    service.mark_reconciled(order_id)
    return {"id": order_id, "inventory_status": "adjusted"}

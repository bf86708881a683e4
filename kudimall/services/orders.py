# kudimall/services/orders.py
# OrderService: оформление заказа из проверенной корзины и списание остатков.
#
# Порядок работы place_order:
#   1. проверка ввода (до любых изменений);
#   2. Order + все OrderItem в одной транзакции;
#   3. если оплата прошла, списание по каждой позиции через InventoryLedger.
#      Ошибка списания одной позиции логируется и не откатывает заказ;
#      заказ помечается adjustment_failed для ручной сверки;
#   4. очистка корзины и уведомление «выстрелил и забыл».

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from kudimall.core.errors import (
    ConflictError,
    MarketplaceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from kudimall.db.session import SessionLocal, session_scope
from kudimall.models.cart import CartItem
from kudimall.models.order import (
    PAYMENT_FAILURE_STATUSES,
    PAYMENT_SUCCESS_STATUSES,
    InventoryStatus,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
)
from kudimall.models.product import Product
from kudimall.models.user import User
from kudimall.services.inventory import InventoryLedger
from kudimall.services.notifications import NotificationDispatcher, send_order_confirmation, to_e164

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
DEFAULT_CUSTOMER_NAME = "Valued Customer"
REQUIRED_ADDRESS_FIELDS = ("street", "city", "region", "country")

# Допустимые переходы статуса: только вперёд, к терминальному состоянию
ALLOWED_TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.pending: frozenset({
        OrderStatus.processing,
        OrderStatus.shipped,
        OrderStatus.delivered,
        OrderStatus.cancelled,
        OrderStatus.payment_failed,
    }),
    OrderStatus.processing: frozenset({OrderStatus.shipped, OrderStatus.delivered, OrderStatus.cancelled}),
    OrderStatus.shipped: frozenset({OrderStatus.delivered, OrderStatus.cancelled}),
}

Scheduler = Callable[..., Any]


@dataclass(slots=True)
class CartLine:
    product_id: int
    quantity: int
    price_snapshot: Decimal


@dataclass(slots=True)
class PlacedOrder:
    order_id: int
    total_amount: Decimal
    status: OrderStatus
    inventory_status: InventoryStatus
    stock_levels: Dict[int, int] = field(default_factory=dict)
    inventory_failures: List[int] = field(default_factory=list)


@dataclass(slots=True)
class OrderDetails:
    order_id: int
    user_id: int
    total_amount: Decimal
    status: OrderStatus
    order_date: Any
    shipping_address: dict
    payment_method: PaymentMethod
    transaction_id: Optional[str]
    inventory_status: InventoryStatus
    inventory_failures: List[int]
    items: List[dict]


def _parse_enum(enum_cls, value, what: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown {what} {value!r}; expected one of: {allowed}")


def _to_money(value, what: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {what}: {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"Invalid {what}: {value!r}")
    return amount.quantize(CENTS)


class OrderService:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        ledger: Optional[InventoryLedger] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.session_factory = session_factory
        self.ledger = ledger or InventoryLedger(session_factory)
        self.notifier = notifier or NotificationDispatcher()

    # --- validation ---------------------------------------------------------

    def _validate_lines(self, items: Iterable[Any]) -> List[CartLine]:
        lines: List[CartLine] = []
        for raw in items or []:
            if isinstance(raw, CartLine):
                product_id, quantity, price = raw.product_id, raw.quantity, raw.price_snapshot
            else:
                try:
                    product_id, quantity, price = raw["product_id"], raw["quantity"], raw["price_snapshot"]
                except (KeyError, TypeError) as e:
                    raise ValidationError(f"Cart line {raw!r} is missing a field: {e}")
            if not isinstance(quantity, int) or quantity <= 0:
                raise ValidationError(f"Quantity for product {product_id} must be a positive integer")
            # Новая строка: CartLine вызывающего не меняется
            lines.append(CartLine(product_id, quantity, _to_money(price, f"price for product {product_id}")))
        if not lines:
            raise ValidationError("Cart is empty")
        return lines

    def _validate_address(self, address: Optional[Mapping[str, Any]]) -> dict:
        if not address:
            raise ValidationError("Shipping address is required")
        missing = [f for f in REQUIRED_ADDRESS_FIELDS if not str(address.get(f) or "").strip()]
        if missing:
            raise ValidationError(f"Shipping address is missing: {', '.join(missing)}")
        return dict(address)

    # --- place order --------------------------------------------------------

    def place_order(
        self,
        user_id: int,
        items: Iterable[Any],
        shipping_address: Mapping[str, Any],
        payment_method,
        transaction_id: Optional[str],
        initial_status,
        schedule: Optional[Scheduler] = None,
    ) -> PlacedOrder:
        """
        Создаёт заказ из корзины.

        initial_status задаётся исходом оплаты: Pending/Processing при успехе,
        Payment Failed/Cancelled при неудаче (тогда склад не трогается).
        schedule это функция постановки фоновой задачи (BackgroundTasks.add_task);
        без неё уведомление отправляется сразу, но тоже best-effort.
        """
        status = _parse_enum(OrderStatus, initial_status, "order status")
        if status not in PAYMENT_SUCCESS_STATUSES and status not in PAYMENT_FAILURE_STATUSES:
            raise ValidationError(f"Order cannot be created with status {status.value!r}")
        method = _parse_enum(PaymentMethod, payment_method, "payment method")
        lines = self._validate_lines(items)
        address = self._validate_address(shipping_address)

        total = sum((l.price_snapshot * l.quantity for l in lines), Decimal("0")).quantize(CENTS)
        payment_ok = status in PAYMENT_SUCCESS_STATUSES

        with session_scope(self.session_factory) as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            product_ids = {l.product_id for l in lines}
            names = dict(session.execute(
                select(Product.id, Product.name).where(Product.id.in_(product_ids))
            ).all())
            missing = sorted(product_ids - names.keys())
            if missing:
                raise NotFoundError(f"Products not found: {missing}")

            order = Order(
                user_id=user_id,
                total_amount=total,
                status=status,
                shipping_address=address,
                payment_method=method,
                transaction_id=transaction_id,
                inventory_status=InventoryStatus.pending if payment_ok else InventoryStatus.not_required,
                inventory_failures=[],
            )
            session.add(order)
            session.flush()

            for line in lines:
                session.add(OrderItem(
                    order_id=order.id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    price_at_purchase=line.price_snapshot,
                    product_name=names[line.product_id],
                ))
            session.flush()

            order_id = order.id
            customer_name = user.full_name or DEFAULT_CUSTOMER_NAME
            customer_phone = user.phone

        logger.info(
            f"[order={order_id}] created user={user_id} items={len(lines)} total={total} status={status.value}"
        )

        if not payment_ok:
            logger.info(f"[order={order_id}] payment outcome {status.value!r}, inventory untouched")
            return PlacedOrder(order_id, total, status, InventoryStatus.not_required)

        stock_levels, failures = self._adjust_inventory(order_id, lines)
        inventory_status = self._record_inventory_outcome(order_id, failures)
        self._clear_cart(order_id, user_id)
        self._dispatch_confirmation(order_id, customer_name, customer_phone, total, schedule)

        return PlacedOrder(order_id, total, status, inventory_status, stock_levels, failures)

    def _adjust_inventory(self, order_id: int, lines: List[CartLine]):
        stock_levels: Dict[int, int] = {}
        failures: List[int] = []
        for line in lines:
            try:
                stock_levels[line.product_id] = self.ledger.decrement_stock(line.product_id, line.quantity)
            except (MarketplaceError, SQLAlchemyError) as e:
                # Заказ уже зафиксирован: ошибка позиции не откатывает его и не мешает остальным
                logger.error(f"[order={order_id}] error updating stock for product {line.product_id}: {e}")
                failures.append(line.product_id)
        return stock_levels, failures

    def _record_inventory_outcome(self, order_id: int, failures: List[int]) -> InventoryStatus:
        outcome = InventoryStatus.adjustment_failed if failures else InventoryStatus.adjusted
        try:
            with session_scope(self.session_factory) as session:
                session.execute(
                    update(Order)
                    .where(Order.id == order_id)
                    .values(inventory_status=outcome, inventory_failures=failures)
                    .execution_options(synchronize_session=False)
                )
        except (MarketplaceError, SQLAlchemyError) as e:
            logger.error(f"[order={order_id}] could not record inventory outcome {outcome.value}: {e}")
            return InventoryStatus.pending
        if failures:
            logger.warning(f"[order={order_id}] needs manual inventory reconciliation for products {failures}")
        return outcome

    def _clear_cart(self, order_id: int, user_id: int) -> None:
        try:
            with session_scope(self.session_factory) as session:
                session.execute(delete(CartItem).where(CartItem.user_id == user_id))
        except (MarketplaceError, SQLAlchemyError) as e:
            logger.error(f"[order={order_id}] could not clear cart of user {user_id}: {e}")

    def _dispatch_confirmation(self, order_id, customer_name, customer_phone, total, schedule) -> None:
        if not customer_phone:
            logger.warning(f"[order={order_id}] customer has no phone, confirmation skipped")
            return
        args = (self.notifier, order_id, customer_name, to_e164(customer_phone), total)
        if schedule is None:
            send_order_confirmation(*args)
        else:
            schedule(send_order_confirmation, *args)

    # --- reads & fulfilment -------------------------------------------------

    def get_order(self, order_id: int) -> OrderDetails:
        with session_scope(self.session_factory) as session:
            order = session.get(Order, order_id)
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            return OrderDetails(
                order_id=order.id,
                user_id=order.user_id,
                total_amount=order.total_amount,
                status=order.status,
                order_date=order.order_date,
                shipping_address=order.shipping_address,
                payment_method=order.payment_method,
                transaction_id=order.transaction_id,
                inventory_status=order.inventory_status,
                inventory_failures=list(order.inventory_failures or []),
                items=[
                    {
                        "product_id": item.product_id,
                        "product_name": item.product_name,
                        "quantity": item.quantity,
                        "price_at_purchase": item.price_at_purchase,
                    }
                    for item in order.items
                ],
            )

    def update_status(self, order_id: int, new_status, vendor_id: Optional[int] = None) -> OrderStatus:
        """Переход статуса выполнения заказа. Назад и из терминальных статусов нельзя."""
        target = _parse_enum(OrderStatus, new_status, "order status")
        with session_scope(self.session_factory) as session:
            order = session.get(Order, order_id)
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            if vendor_id is not None:
                owns_item = session.execute(
                    select(OrderItem.id)
                    .join(Product, Product.id == OrderItem.product_id)
                    .where(OrderItem.order_id == order_id, Product.vendor_id == vendor_id)
                    .limit(1)
                ).first()
                if owns_item is None:
                    raise PermissionDeniedError(f"Order {order_id} has no products of vendor {vendor_id}")

            current = order.status
            if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
                raise ValidationError(f"Order {order_id} cannot move from {current.value!r} to {target.value!r}")

            result = session.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == current)
                .values(status=target)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(f"Order {order_id} status changed concurrently")

        logger.info(f"[order={order_id}] status {current.value} -> {target.value}")
        return target

    def orders_needing_reconciliation(self) -> List[dict]:
        with session_scope(self.session_factory) as session:
            orders = session.execute(
                select(Order)
                .where(Order.inventory_status == InventoryStatus.adjustment_failed)
                .order_by(Order.order_date, Order.id)
            ).scalars().all()
            return [
                {
                    "order_id": o.id,
                    "user_id": o.user_id,
                    "order_date": o.order_date,
                    "status": o.status.value,
                    "inventory_failures": list(o.inventory_failures or []),
                }
                for o in orders
            ]

    def mark_reconciled(self, order_id: int) -> None:
        with session_scope(self.session_factory) as session:
            if session.get(Order, order_id) is None:
                raise NotFoundError(f"Order {order_id} not found")
            result = session.execute(
                update(Order)
                .where(Order.id == order_id, Order.inventory_status == InventoryStatus.adjustment_failed)
                .values(inventory_status=InventoryStatus.adjusted, inventory_failures=[])
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(f"Order {order_id} is not awaiting inventory reconciliation")
        logger.info(f"[order={order_id}] inventory reconciled manually")

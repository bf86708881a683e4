# kudimall/models/order.py
# Модели Order и OrderItem для фиксации сумм, статусов и снимков цен заказа.
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime, Enum, JSON
from sqlalchemy.orm import relationship
from kudimall.db.base import Base, utcnow
import enum


def _enum_values(enum_cls):
    # Храним значения ("Payment Failed"), а не имена членов
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    pending = "Pending"
    processing = "Processing"
    shipped = "Shipped"
    delivered = "Delivered"
    cancelled = "Cancelled"
    payment_failed = "Payment Failed"


# Статусы, с которыми заказ создаётся по исходу оплаты
PAYMENT_SUCCESS_STATUSES = frozenset({OrderStatus.pending, OrderStatus.processing})
PAYMENT_FAILURE_STATUSES = frozenset({OrderStatus.payment_failed, OrderStatus.cancelled})


class PaymentMethod(str, enum.Enum):
    mtn_momo = "MTN MoMo"
    vodafone_cash = "Vodafone Cash"
    telecel_cash = "Telecel Cash"
    cash_on_delivery = "Cash on Delivery"
    paystack = "Paystack"


class InventoryStatus(str, enum.Enum):
    not_required = "not_required"
    pending = "pending"
    adjusted = "adjusted"
    adjustment_failed = "adjustment_failed"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(OrderStatus, values_callable=_enum_values), nullable=False, default=OrderStatus.pending)
    order_date = Column(DateTime, default=utcnow)
    # {"street", "city", "region", "postal_code", "country"}
    shipping_address = Column(JSON, nullable=False)
    payment_method = Column(Enum(PaymentMethod, values_callable=_enum_values), nullable=False)
    transaction_id = Column(String, nullable=True)
    inventory_status = Column(
        Enum(InventoryStatus, values_callable=_enum_values),
        nullable=False,
        default=InventoryStatus.pending,
    )
    # id товаров, остаток которых не удалось списать (ручная сверка)
    inventory_failures = Column(JSON, nullable=False, default=list)

    user = relationship("User")
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    # Снимок цены на момент покупки; никогда не пересчитывается из Product.price
    price_at_purchase = Column(Numeric(12, 2), nullable=False)
    product_name = Column(String, nullable=True)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

# kudimall/models/boost.py
# Планы продвижения, заявки продавцов на буст и глобальные настройки (лимит бустов).
from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, Text, Enum, JSON, Index, text
from sqlalchemy.orm import relationship
from kudimall.db.base import Base, utcnow
import enum


class RequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class BoostPlan(Base):
    __tablename__ = "boost_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    duration_days = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class BoostRequest(Base):
    __tablename__ = "boost_requests"
    __table_args__ = (
        # Не более одной заявки в ожидании на товар
        Index(
            "uq_boost_requests_pending_product",
            "product_id",
            unique=True,
            sqlite_where=text("request_status = 'pending'"),
            postgresql_where=text("request_status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    plan_id = Column(Integer, ForeignKey("boost_plans.id"), nullable=True)
    # Снимок плана на момент заявки
    plan_duration_days = Column(Integer, nullable=False)
    plan_price = Column(Numeric(12, 2), nullable=False)
    request_status = Column(
        Enum(RequestStatus, values_callable=lambda e: [m.value for m in e], native_enum=False),
        nullable=False,
        default=RequestStatus.pending,
    )
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)
    decided_at = Column(DateTime, nullable=True)

    product = relationship("Product", back_populates="boost_requests")
    vendor = relationship("Vendor")
    plan = relationship("BoostPlan")


class AppSetting(Base):
    __tablename__ = "app_settings"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)


MAX_BOOSTED_PRODUCTS_KEY = "max_boosted_products"

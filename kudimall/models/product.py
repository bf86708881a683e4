# kudimall/models/product.py
# Модель товара. Остаток (stock) и окно продвижения (boosted_until) это разные
# области одной строки: первую пишет только InventoryLedger, вторую PromotionService.
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint, and_
from sqlalchemy.orm import relationship
from kudimall.db.base import Base, utcnow

class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    # Единственное хранимое поле продвижения; is_boosted/boost_status вычисляются на момент чтения
    boosted_until = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)

    vendor = relationship("Vendor", backref="products")
    boost_requests = relationship("BoostRequest", back_populates="product")

    @classmethod
    def boosted_clause(cls, now):
        """SQL-условие «сейчас продвигается» для выборок (featured, подсчёт лимита)."""
        return and_(cls.boosted_until.isnot(None), cls.boosted_until > now)

    def is_boosted_at(self, now) -> bool:
        return self.boosted_until is not None and self.boosted_until > now

    def boost_status_at(self, now) -> str:
        """
        Проекция статуса продвижения на момент now:
        requested: есть заявка в ожидании; active: окно ещё открыто;
        expired: окно было и закрылось; none: продвижения не было.
        """
        if any(r.request_status == "pending" for r in self.boost_requests):
            return "requested"
        if self.is_boosted_at(now):
            return "active"
        if self.boosted_until is not None:
            return "expired"
        return "none"

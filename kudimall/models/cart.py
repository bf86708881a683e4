# kudimall/models/cart.py
# Модель CartItem: элементы корзины пользователя. Очищается успешным оформлением заказа.
from sqlalchemy import Column, Integer, ForeignKey, DateTime
from sqlalchemy.orm import relationship
from kudimall.db.base import Base, utcnow

class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, default=1)
    added_at = Column(DateTime, default=utcnow)

    user = relationship("User")
    product = relationship("Product")

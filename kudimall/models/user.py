# kudimall/models/user.py
# Пользователь (покупатель/продавец/админ) и профиль продавца.
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from kudimall.db.base import Base, utcnow
import enum

class RoleEnum(str, enum.Enum):
    customer = "customer"
    vendor = "vendor"
    admin = "admin"

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Локальный формат (0241234567); в E.164 переводится при отправке уведомлений
    phone = Column(String, unique=True, index=True, nullable=True)
    full_name = Column(String, nullable=True)
    role = Column(Enum(RoleEnum), default=RoleEnum.customer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    blacklisted = Column(Boolean, default=False)

class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    store_name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User")

# kudimall/api/schemas.py
# Pydantic-схемы тел запросов. Бизнес-проверки (количество > 0, статусы и т.п.)
# делают сервисы, чтобы ошибки API и сервисов совпадали.
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class CartLineIn(BaseModel):
    product_id: int
    quantity: int
    price_snapshot: Decimal


class AddressIn(BaseModel):
    street: str
    city: str
    region: str
    postal_code: Optional[str] = None
    country: str = "Ghana"


class PlaceOrderIn(BaseModel):
    items: List[CartLineIn]
    shipping_address: AddressIn
    payment_method: str
    transaction_id: Optional[str] = None
    # Исход оплаты от внешнего платёжного источника
    status: str


class OrderStatusIn(BaseModel):
    status: str


class StockIn(BaseModel):
    stock: int


class BoostRequestIn(BaseModel):
    product_id: int
    plan_id: int


class BoostLimitIn(BaseModel):
    limit: Optional[int] = None

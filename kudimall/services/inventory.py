# kudimall/services/inventory.py
# InventoryLedger: единственный примитив изменения Product.stock.
# Списание идёт через compare-and-swap по (id, прочитанный остаток):
# проигравший гонку перечитывает остаток и вычитает заново.

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from kudimall.core.config import settings
from kudimall.core.errors import ConcurrencyError, NotFoundError, PermissionDeniedError, ValidationError
from kudimall.db.session import SessionLocal, session_scope
from kudimall.models.product import Product

logger = logging.getLogger(__name__)


class InventoryLedger:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        max_retries: Optional[int] = None,
        low_stock_threshold: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.max_retries = settings.STOCK_UPDATE_MAX_RETRIES if max_retries is None else max_retries
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.low_stock_threshold = (
            settings.LOW_STOCK_THRESHOLD if low_stock_threshold is None else low_stock_threshold
        )

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        """
        Списывает quantity с остатка товара и возвращает новый остаток.

        Остаток не уходит ниже нуля: лишнее количество обрезается (floor-at-zero).
        Параллельные списания одного товара сериализуются; при проигранной гонке
        попытка повторяется не более max_retries раз, затем ConcurrencyError.
        """
        if quantity <= 0:
            raise ValidationError(f"Quantity must be positive, got {quantity}")

        for attempt in range(1, self.max_retries + 1):
            try:
                new_stock = self._try_decrement(product_id, quantity)
            except ConcurrencyError:
                logger.debug(
                    f"[product={product_id}] stock race lost, retrying ({attempt}/{self.max_retries})"
                )
                continue
            if new_stock <= self.low_stock_threshold:
                logger.warning(f"[product={product_id}] low stock: {new_stock} unit(s) left")
            return new_stock

        logger.error(f"[product={product_id}] stock update gave up after {self.max_retries} attempts")
        raise ConcurrencyError(
            f"Could not update stock for product {product_id} after {self.max_retries} attempts"
        )

    def _try_decrement(self, product_id: int, quantity: int) -> int:
        with session_scope(self.session_factory) as session:
            current = session.execute(
                select(Product.stock).where(Product.id == product_id)
            ).scalar_one_or_none()
            if current is None:
                raise NotFoundError(f"Product {product_id} not found")

            new_stock = max(0, current - quantity)
            if current < quantity:
                logger.warning(
                    f"[product={product_id}] stock would go negative "
                    f"(have={current}, need={quantity}), setting to 0"
                )

            result = session.execute(
                update(Product)
                .where(Product.id == product_id, Product.stock == current)
                .values(stock=new_stock)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrencyError(f"Stock of product {product_id} changed concurrently")

        logger.info(f"[product={product_id}] stock decremented by {quantity} ({current} -> {new_stock})")
        return new_stock

    def set_stock(self, product_id: int, stock: int, vendor_id: Optional[int] = None) -> int:
        """Правка остатка продавцом. Пишет только колонку stock."""
        if stock < 0:
            raise ValidationError(f"Stock cannot be negative, got {stock}")

        with session_scope(self.session_factory) as session:
            owner_id = session.execute(
                select(Product.vendor_id).where(Product.id == product_id)
            ).one_or_none()
            if owner_id is None:
                raise NotFoundError(f"Product {product_id} not found")
            if vendor_id is not None and owner_id[0] != vendor_id:
                raise PermissionDeniedError(f"Product {product_id} does not belong to vendor {vendor_id}")

            session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock=stock)
                .execution_options(synchronize_session=False)
            )

        logger.info(f"[product={product_id}] stock set to {stock}")
        return stock

    def low_stock_products(self, vendor_id: int, threshold: Optional[int] = None) -> List[dict]:
        limit = self.low_stock_threshold if threshold is None else threshold
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(Product.id, Product.name, Product.stock)
                .where(Product.vendor_id == vendor_id, Product.stock <= limit)
                .order_by(Product.stock, Product.id)
            ).all()
        return [{"id": r.id, "name": r.name, "stock": r.stock} for r in rows]

# kudimall/services/promotion.py
# PromotionService: заявки продавцов на буст товара и решения администратора.
#
# Хранится только boosted_until и история заявок. «Продвигается ли товар»
# всегда вычисляется в момент чтения: boosted_until > now. Фонового процесса,
# который гасил бы истёкшие бусты, нет и не нужно.

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from kudimall.core.config import settings
from kudimall.core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from kudimall.db.base import utcnow
from kudimall.db.session import SessionLocal, session_scope
from kudimall.models.boost import MAX_BOOSTED_PRODUCTS_KEY, AppSetting, BoostPlan, BoostRequest, RequestStatus
from kudimall.models.product import Product
from kudimall.models.user import Vendor

logger = logging.getLogger(__name__)


class PromotionService:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        clock: Callable[[], datetime] = utcnow,
        page_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.page_size = settings.BOOST_REQUESTS_PAGE_SIZE if page_size is None else page_size
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")

    def active_plans(self) -> List[dict]:
        with session_scope(self.session_factory) as session:
            plans = session.execute(
                select(BoostPlan).where(BoostPlan.is_active.is_(True)).order_by(BoostPlan.price, BoostPlan.id)
            ).scalars().all()
            return [
                {
                    "id": p.id,
                    "name": p.name,
                    "description": p.description,
                    "duration_days": p.duration_days,
                    "price": p.price,
                }
                for p in plans
            ]

    def request_boost(self, product_id: int, vendor_id: int, plan_id: int, user_id: Optional[int] = None) -> int:
        """
        Заявка продавца на буст товара по выбранному плану.
        На товар допускается только одна заявка в ожидании, повтор даёт ConflictError.
        """
        now = self.clock()
        with session_scope(self.session_factory) as session:
            plan = session.get(BoostPlan, plan_id)
            if plan is None:
                raise NotFoundError(f"Boost plan {plan_id} not found")
            if not plan.is_active:
                raise ValidationError(f"Boost plan {plan_id} is not active")

            product = session.get(Product, product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            if product.vendor_id != vendor_id:
                raise PermissionDeniedError(f"Product {product_id} does not belong to vendor {vendor_id}")

            pending = session.execute(
                select(BoostRequest.id).where(
                    BoostRequest.product_id == product_id,
                    BoostRequest.request_status == RequestStatus.pending,
                )
            ).first()
            if pending is not None:
                raise ConflictError(f"Product {product_id} already has a pending boost request")

            request = BoostRequest(
                product_id=product_id,
                vendor_id=vendor_id,
                user_id=user_id,
                plan_id=plan.id,
                plan_duration_days=plan.duration_days,
                plan_price=plan.price,
                request_status=RequestStatus.pending,
                created_at=now,
                updated_at=now,
            )
            session.add(request)
            try:
                session.flush()
            except IntegrityError as e:
                # Параллельная заявка успела раньше: сработал частичный уникальный индекс
                raise ConflictError(f"Product {product_id} already has a pending boost request") from e
            request_id = request.id

        logger.info(f"[boost={request_id}] requested product={product_id} vendor={vendor_id} plan={plan_id}")
        return request_id

    def approve_boost(self, request_id: int) -> datetime:
        """
        Одобрение после подтверждения оплаты вне системы.
        Заявка и окно продвижения товара меняются в одной транзакции.
        """
        now = self.clock()
        with session_scope(self.session_factory) as session:
            request = self._get_pending(session, request_id)

            limit = self._locked_limit(session)
            if limit is not None:
                boosted = session.execute(
                    select(func.count(Product.id)).where(
                        Product.boosted_clause(now),
                        Product.id != request.product_id,
                    )
                ).scalar_one()
                if boosted >= limit:
                    raise ConflictError(f"Maximum number of boosted products ({limit}) reached")

            self._decide(session, request_id, RequestStatus.approved, now)

            boosted_until = now + timedelta(days=request.plan_duration_days)
            session.execute(
                update(Product)
                .where(Product.id == request.product_id)
                .values(boosted_until=boosted_until)
                .execution_options(synchronize_session=False)
            )
            product_id = request.product_id

        logger.info(f"[boost={request_id}] approved, product={product_id} boosted until {boosted_until.isoformat()}")
        return boosted_until

    def reject_boost(self, request_id: int) -> None:
        now = self.clock()
        with session_scope(self.session_factory) as session:
            request = self._get_pending(session, request_id)
            self._decide(session, request_id, RequestStatus.rejected, now)
            product_id = request.product_id
        logger.info(f"[boost={request_id}] rejected, product={product_id}")

    def _get_pending(self, session, request_id: int) -> BoostRequest:
        request = session.get(BoostRequest, request_id)
        if request is None:
            raise NotFoundError(f"Boost request {request_id} not found")
        if request.request_status != RequestStatus.pending:
            raise ConflictError(f"Boost request {request_id} is already {request.request_status.value}")
        return request

    def _decide(self, session, request_id: int, outcome: RequestStatus, now: datetime) -> None:
        result = session.execute(
            update(BoostRequest)
            .where(BoostRequest.id == request_id, BoostRequest.request_status == RequestStatus.pending)
            .values(request_status=outcome, decided_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(f"Boost request {request_id} was decided concurrently")

    # --- boost cap ----------------------------------------------------------

    def _locked_limit(self, session) -> Optional[int]:
        # Пустой UPDATE берёт блокировку записи до подсчёта бустов:
        # на SQLite это write-lock базы (FOR UPDATE там игнорируется), на Postgres блокировка строки
        session.execute(
            update(AppSetting)
            .where(AppSetting.key == MAX_BOOSTED_PRODUCTS_KEY)
            .values(value=AppSetting.value)
            .execution_options(synchronize_session=False)
        )
        setting = session.execute(
            select(AppSetting).where(AppSetting.key == MAX_BOOSTED_PRODUCTS_KEY).with_for_update()
        ).scalar_one_or_none()
        return _limit_from(setting)

    def boost_limit(self) -> Optional[int]:
        with session_scope(self.session_factory) as session:
            return _limit_from(session.get(AppSetting, MAX_BOOSTED_PRODUCTS_KEY))

    def set_boost_limit(self, limit: Optional[int]) -> Optional[int]:
        """None снимает ограничение."""
        if limit is not None and limit < 0:
            raise ValidationError("Boost limit cannot be negative")
        with session_scope(self.session_factory) as session:
            setting = session.get(AppSetting, MAX_BOOSTED_PRODUCTS_KEY)
            if limit is None:
                if setting is not None:
                    session.delete(setting)
            elif setting is None:
                session.add(AppSetting(key=MAX_BOOSTED_PRODUCTS_KEY, value={"limit": limit}))
            else:
                setting.value = {"limit": limit}
        logger.info(f"max boosted products set to {limit}")
        return limit

    # --- reads --------------------------------------------------------------

    def list_requests(self, status=None, page: int = 1) -> dict:
        if page < 1:
            raise ValidationError("Page must be >= 1")
        conditions = []
        if status is not None:
            try:
                conditions.append(BoostRequest.request_status == RequestStatus(status))
            except ValueError:
                raise ValidationError(f"Unknown boost request status {status!r}")

        with session_scope(self.session_factory) as session:
            total = session.execute(
                select(func.count(BoostRequest.id)).where(*conditions)
            ).scalar_one()
            rows = session.execute(
                select(BoostRequest, Product.name, Vendor.store_name)
                .join(Product, Product.id == BoostRequest.product_id)
                .join(Vendor, Vendor.id == BoostRequest.vendor_id)
                .where(*conditions)
                .order_by(BoostRequest.created_at.desc(), BoostRequest.id.desc())
                .offset((page - 1) * self.page_size)
                .limit(self.page_size)
            ).all()
            items = [
                {
                    "id": r.id,
                    "product_id": r.product_id,
                    "product_name": product_name,
                    "vendor_id": r.vendor_id,
                    "store_name": store_name,
                    "plan_duration_days": r.plan_duration_days,
                    "plan_price": r.plan_price,
                    "request_status": r.request_status.value,
                    "created_at": r.created_at,
                    "decided_at": r.decided_at,
                }
                for r, product_name, store_name in rows
            ]
        return {"total": total, "page": page, "page_size": self.page_size, "items": items}

    def featured_products(self, limit: Optional[int] = None) -> List[dict]:
        """Единственная выборка «продвигаемых» товаров: только boosted_until > now."""
        now = self.clock()
        query = (
            select(Product)
            .where(Product.boosted_clause(now))
            .order_by(Product.boosted_until.desc(), Product.id)
        )
        if limit is not None:
            query = query.limit(limit)
        with session_scope(self.session_factory) as session:
            products = session.execute(query).scalars().all()
            return [
                {
                    "id": p.id,
                    "name": p.name,
                    "price": p.price,
                    "stock": p.stock,
                    "vendor_id": p.vendor_id,
                    "boosted_until": p.boosted_until,
                }
                for p in products
            ]

    def promotion_state(self, product_id: int) -> dict:
        now = self.clock()
        with session_scope(self.session_factory) as session:
            product = session.get(Product, product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            return {
                "product_id": product.id,
                "is_boosted": product.is_boosted_at(now),
                "boost_status": product.boost_status_at(now),
                "boosted_until": product.boosted_until,
            }


def _limit_from(setting: Optional[AppSetting]) -> Optional[int]:
    if setting is None or not isinstance(setting.value, dict):
        return None
    limit = setting.value.get("limit")
    return int(limit) if limit is not None else None

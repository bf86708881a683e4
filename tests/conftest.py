"""Pytest fixtures: временная SQLite-база, сиды и клиент API."""

import os
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

# Настройки читаются при импорте kudimall, поэтому окружение задаётся до него
_DB_DIR = tempfile.mkdtemp(prefix="kudimall-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi.testclient import TestClient

from kudimall.main import app
from kudimall.core.security import create_access_token
from kudimall.db.base import Base
from kudimall.db.session import SessionLocal, engine
from kudimall.models.boost import BoostPlan
from kudimall.models.product import Product
from kudimall.models.user import RoleEnum, User, Vendor


class FrozenClock:
    """Управляемые часы для PromotionService."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed():
    session = SessionLocal()
    try:
        customer = User(phone="0241234567", full_name="Ama Mensah", role=RoleEnum.customer)
        silent_customer = User(phone=None, full_name=None, role=RoleEnum.customer)
        vendor_user = User(phone="0201112222", full_name="Kofi Boateng", role=RoleEnum.vendor)
        other_vendor_user = User(phone="0553334444", full_name="Esi Owusu", role=RoleEnum.vendor)
        admin = User(phone="0509998888", full_name="Admin", role=RoleEnum.admin)
        session.add_all([customer, silent_customer, vendor_user, other_vendor_user, admin])
        session.flush()

        vendor = Vendor(user_id=vendor_user.id, store_name="Kofi's Kente")
        other_vendor = Vendor(user_id=other_vendor_user.id, store_name="Esi Electronics")
        session.add_all([vendor, other_vendor])
        session.flush()

        product_a = Product(vendor_id=vendor.id, name="Kente Scarf", price=Decimal("20.00"), stock=10)
        product_b = Product(vendor_id=vendor.id, name="Shea Butter", price=Decimal("15.50"), stock=3)
        product_c = Product(vendor_id=other_vendor.id, name="Power Bank", price=Decimal("100.00"), stock=0)
        session.add_all([product_a, product_b, product_c])

        week = BoostPlan(name="Weekly", duration_days=7, price=Decimal("50.00"), is_active=True)
        month = BoostPlan(name="Monthly", duration_days=30, price=Decimal("150.00"), is_active=True)
        legacy = BoostPlan(name="Legacy", duration_days=3, price=Decimal("10.00"), is_active=False)
        session.add_all([week, month, legacy])
        session.commit()

        return SimpleNamespace(
            customer_id=customer.id,
            silent_customer_id=silent_customer.id,
            vendor_user_id=vendor_user.id,
            other_vendor_user_id=other_vendor_user.id,
            admin_id=admin.id,
            vendor_id=vendor.id,
            other_vendor_id=other_vendor.id,
            product_a=product_a.id,
            product_b=product_b.id,
            product_c=product_c.id,
            week_plan=week.id,
            month_plan=month.id,
            legacy_plan=legacy.id,
        )
    finally:
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def headers_for():
    def _headers(user_id: int) -> dict:
        return {"Authorization": f"Bearer {create_access_token(str(user_id))}"}
    return _headers


@pytest.fixture
def address() -> dict:
    return {"street": "12 Oxford St", "city": "Accra", "region": "Greater Accra", "country": "Ghana"}


@pytest.fixture
def run_concurrently():
    """Запускает вызовы одновременно (через барьер) и возвращает результаты или исключения."""
    def _run(fn, args_list):
        barrier = threading.Barrier(len(args_list))

        def _call(args):
            barrier.wait()
            try:
                return fn(*args)
            except Exception as e:
                return e

        with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
            return list(pool.map(_call, args_list))
    return _run


@pytest.fixture
def read_product():
    def _read(product_id: int) -> Product:
        session = SessionLocal()
        try:
            return session.get(Product, product_id)
        finally:
            session.close()
    return _read

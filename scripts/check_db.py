# scripts/check_db.py
# Проверяет подключение к DATABASE_URL и печатает состояние ядра:
# заказы, ожидающие ручной сверки остатков, и активные бусты против лимита.
from sqlalchemy import text

from kudimall.core.config import settings
from kudimall.core.errors import DependencyError
from kudimall.db.session import engine
from kudimall.main import app  # noqa: F401  регистрирует все модели
from kudimall.services.orders import OrderService
from kudimall.services.promotion import PromotionService


def main():
    print('Trying to connect to:', settings.DATABASE_URL)
    try:
        with engine.connect() as conn:
            print('Connection OK, SELECT 1 ->', conn.execute(text("SELECT 1")).scalar())
    except Exception as e:
        print('Connection failed:', e)
        return

    try:
        pending = OrderService().orders_needing_reconciliation()
        promotion = PromotionService()
        featured = promotion.featured_products()
        limit = promotion.boost_limit()
    except DependencyError as e:
        print('Store error:', e)
        return

    print(f'Orders awaiting inventory reconciliation: {len(pending)}')
    for order in pending:
        print(f"  order={order['order_id']} status={order['status']} products={order['inventory_failures']}")
    print(f"Boosted products: {len(featured)} (limit: {'none' if limit is None else limit})")


if __name__ == '__main__':
    main()

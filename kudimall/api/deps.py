# kudimall/api/deps.py
# Фабрики сервисов для Depends. В тестах подменяются через app.dependency_overrides.
from kudimall.services.inventory import InventoryLedger
from kudimall.services.orders import OrderService
from kudimall.services.promotion import PromotionService


def get_inventory_ledger() -> InventoryLedger:
    return InventoryLedger()


def get_order_service() -> OrderService:
    return OrderService()


def get_promotion_service() -> PromotionService:
    return PromotionService()

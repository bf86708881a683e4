# kudimall/api/inventory.py
# Роуты продавца: правка остатка и список товаров на исходе.
from typing import Optional

from fastapi import APIRouter, Depends

from kudimall.api.deps import get_inventory_ledger
from kudimall.api.schemas import StockIn
from kudimall.core import security
from kudimall.models.user import Vendor
from kudimall.services.inventory import InventoryLedger

router = APIRouter()


@router.put("/vendor/products/{product_id}/stock")
def set_stock(
    product_id: int,
    body: StockIn,
    vendor: Vendor = Depends(security.get_current_vendor),
    ledger: InventoryLedger = Depends(get_inventory_ledger),
):
    stock = ledger.set_stock(product_id, body.stock, vendor_id=vendor.id)
    return {"id": product_id, "stock": stock}


@router.get("/vendor/products/low-stock")
def low_stock(
    threshold: Optional[int] = None,
    vendor: Vendor = Depends(security.get_current_vendor),
    ledger: InventoryLedger = Depends(get_inventory_ledger),
):
    return {"products": ledger.low_stock_products(vendor.id, threshold)}

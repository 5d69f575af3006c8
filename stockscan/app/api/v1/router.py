from fastapi import APIRouter

from stockscan.app.api.v1.endpoints.products import router as products_router
from stockscan.app.api.v1.endpoints.warehouses import router as warehouses_router
from stockscan.app.api.v1.endpoints.stock import router as stock_router
from stockscan.app.api.v1.endpoints.movements import router as movements_router
from stockscan.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from stockscan.app.api.v1.endpoints.delivery_orders import router as delivery_orders_router
from stockscan.app.api.v1.endpoints.scan_sessions import router as scan_sessions_router

router = APIRouter()
router.include_router(products_router, tags=["products"])
router.include_router(warehouses_router, tags=["warehouses"])
router.include_router(stock_router, tags=["stock"])
router.include_router(movements_router, tags=["movements"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(delivery_orders_router, tags=["delivery_orders"])
router.include_router(scan_sessions_router, tags=["scan_sessions"])

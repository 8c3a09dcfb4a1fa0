from fastapi import APIRouter

from poledger.app.api.v1.endpoints.health import router as health_router
from poledger.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from poledger.app.api.v1.endpoints.stock import router as stock_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(stock_router, tags=["stock"])

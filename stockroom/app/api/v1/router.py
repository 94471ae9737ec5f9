from fastapi import APIRouter

from stockroom.app.api.v1.endpoints.health import router as health_router
from stockroom.app.api.v1.endpoints.categories import router as categories_router
from stockroom.app.api.v1.endpoints.equipment import router as equipment_router
from stockroom.app.api.v1.endpoints.movements import router as movements_router
from stockroom.app.api.v1.endpoints.orders import router as orders_router
from stockroom.app.api.v1.endpoints.users import router as users_router
from stockroom.app.api.v1.endpoints.transfer import router as transfer_router
from stockroom.app.api.v1.endpoints.dashboard import router as dashboard_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(categories_router, tags=["categories"])
router.include_router(equipment_router, tags=["equipment"])
router.include_router(movements_router, tags=["movements"])
router.include_router(orders_router, tags=["orders"])
router.include_router(users_router, tags=["users"])
router.include_router(transfer_router, tags=["transfer"])
router.include_router(dashboard_router, tags=["dashboard"])

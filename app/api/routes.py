from fastapi import APIRouter
from app.api.routes_health import router as health_router
from app.api.routes_backends import router as backends_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(backends_router, tags=["backends"])

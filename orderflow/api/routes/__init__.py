from fastapi import APIRouter

from orderflow.api.routes import health, orders

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])

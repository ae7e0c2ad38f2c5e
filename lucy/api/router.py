from fastapi import APIRouter
from lucy.api.endpoints import assistant, auth, dashboards, orders

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(auth.router)
api_router.include_router(orders.router)
api_router.include_router(assistant.router)
api_router.include_router(dashboards.router)

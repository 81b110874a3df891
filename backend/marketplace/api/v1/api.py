from fastapi import APIRouter

from marketplace.api.v1.endpoints import auth, missions, notifications, orders, settings, uploads, users

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(missions.router, prefix="/missions", tags=["missions"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(settings.router, prefix="/settings", tags=["settings"])

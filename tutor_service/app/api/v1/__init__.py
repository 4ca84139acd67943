from fastapi import APIRouter

from .accounts import router as accounts_router
from .admin import router as admin_router
from .history import router as history_router
from .subscriptions import router as subscriptions_router
from .tools import router as tools_router

api_router = APIRouter()
api_router.include_router(accounts_router, prefix="/accounts", tags=["accounts"])
api_router.include_router(tools_router, prefix="/tools", tags=["tools"])
api_router.include_router(history_router, prefix="/history", tags=["history"])
api_router.include_router(
    subscriptions_router, prefix="/subscriptions", tags=["subscriptions"]
)
api_router.include_router(admin_router, prefix="/admin", tags=["admin"])

"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from smartzap.api.account_limits import router as account_limits_router
from smartzap.api.campaigns import router as campaigns_router
from smartzap.api.inbox import router as inbox_router
from smartzap.api.inbox_settings import router as inbox_settings_router
from smartzap.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(account_limits_router)
api_router.include_router(campaigns_router)
api_router.include_router(inbox_router)
api_router.include_router(inbox_settings_router)
api_router.include_router(health_router)

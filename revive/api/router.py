"""
API router - aggregates all route modules.
"""
from fastapi import APIRouter
from revive.api.webhooks import router as webhooks_router
from revive.api.policy import router as policy_router
from revive.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(webhooks_router)
api_router.include_router(policy_router)
api_router.include_router(health_router)

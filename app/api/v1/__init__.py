"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import csrf, auth, groups, lottery, webhooks

api_router = APIRouter()

api_router.include_router(
    csrf.router,
    prefix="/csrf",
    tags=["csrf"]
)

api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["auth"]
)

api_router.include_router(
    groups.router,
    prefix="/groups",
    tags=["groups"]
)

api_router.include_router(
    lottery.router,
    prefix="/lottery",
    tags=["lottery"]
)

api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["webhooks"]
)

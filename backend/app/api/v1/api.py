# File: backend/app/api/v1/api.py
# Version: v0.8.0
"""
v1 API aggregator.

Routers included under /api:
- health
- overhangs (matrices, evaluate, optimize, batch)
"""
from __future__ import annotations

from fastapi import APIRouter

from . import health as health_router
from . import overhangs as overhangs_router

api_router = APIRouter()
api_router.include_router(health_router.router)
api_router.include_router(overhangs_router.router)

"""API router aggregating all v1 routes."""

from __future__ import annotations

from fastapi import APIRouter

from .availability import router as availability_router
from .bookings import router as bookings_router
from .profiles import router as profiles_router

router = APIRouter()

router.include_router(availability_router)
router.include_router(bookings_router)
router.include_router(profiles_router)

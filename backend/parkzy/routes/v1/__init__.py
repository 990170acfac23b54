"""Version 1 API routers."""

from fastapi import APIRouter

from . import availability, bookings, spots

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings.router)
api_router.include_router(availability.router)
api_router.include_router(spots.router)

__all__ = ["api_router"]

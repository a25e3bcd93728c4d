"""API routes."""

from fastapi import APIRouter

from waitline.api.routes import history, notifications, queue, reservations, tables

api_router = APIRouter()

api_router.include_router(queue.router, prefix="/queue", tags=["queue"])
api_router.include_router(tables.router, prefix="/tables", tags=["tables"])
api_router.include_router(reservations.router, prefix="/reservations", tags=["reservations"])
api_router.include_router(history.router, prefix="/history", tags=["history"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])

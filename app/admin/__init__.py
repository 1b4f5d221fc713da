"""Operator endpoints under /admin (X-Admin-Secret)."""
from fastapi import APIRouter

from app.admin.routers import errors, runs

admin_router = APIRouter(prefix="/admin", tags=["admin"])

admin_router.include_router(runs.router, prefix="/runs", tags=["admin-runs"])
admin_router.include_router(errors.router, prefix="/errors", tags=["admin-errors"])

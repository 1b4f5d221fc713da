"""Operator auth: X-Admin-Secret header."""
from fastapi import Header, HTTPException

from app.core.config import settings
from app.core.security import secrets_match


def require_admin(x_admin_secret: str | None = Header(None, alias="X-Admin-Secret")) -> None:
    """Constant-time check of the shared operator secret."""
    if not settings.admin_secret:
        raise HTTPException(status_code=503, detail="Admin endpoints are not configured (ADMIN_SECRET missing).")
    if not secrets_match(x_admin_secret, settings.admin_secret):
        raise HTTPException(status_code=403, detail="Forbidden.")

from typing import Optional

from fastapi import Header, Request

from prism.database import get_db
from prism.services.backend_client import PrismBackendClient

__all__ = ["get_db", "current_user_id", "request_context", "get_backend_client"]


def current_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Acting user as sent by the dashboard (``x-user-id``); no authentication."""
    value = (x_user_id or "").strip()
    return value or None


def request_context(request: Request) -> dict:
    """Audit metadata for the current request."""
    return {
        "request_id": getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id"),
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def get_backend_client() -> PrismBackendClient:
    return PrismBackendClient()

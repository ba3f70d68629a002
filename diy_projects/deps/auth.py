from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, Request, status

from ..core.config import settings
from ..middlewares import principal_ctx_var


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


async def require_api_key(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str:
    """Guard API routes with ``X-API-Key`` when ``API_KEY`` is configured.

    With no key configured the API is open and callers are recorded as
    ``anonymous`` in the access log.
    """

    expected = settings.API_KEY
    if not expected:
        _set_principal(request, "anonymous")
        return "anonymous"
    provided = (x_api_key or "").strip()
    if provided and hmac.compare_digest(expected, provided):
        _set_principal(request, "api-key")
        return "api-key"
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid API key" if provided else "Authorization required",
    )

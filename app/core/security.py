import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request


def require_admin_key(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias="x-api-key")
):
    """Reject admin calls whose x-api-key header does not match ADMIN_API_KEY."""
    expected = request.app.state.settings.ADMIN_API_KEY
    if not expected:
        raise HTTPException(status_code=503, detail="Admin API key is not configured")

    if not x_api_key or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")

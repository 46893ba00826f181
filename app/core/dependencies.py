from typing import Optional

from fastapi import Header, HTTPException, Request

from app.core.errors import ValidationError
from app.utils.deadline import Deadline


def get_store(request: Request):
    return request.app.state.store


def get_query_service(request: Request):
    return request.app.state.query_service


def get_deadline(
    request: Request,
    x_request_timeout: Optional[float] = Header(default=None, alias="X-Request-Timeout")
) -> Optional[Deadline]:
    timeout = x_request_timeout
    if timeout is None:
        timeout = request.app.state.settings.REQUEST_TIMEOUT_SECONDS or None
    try:
        return Deadline.after(timeout)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    if request.client:
        return request.client.host
    return None

"""Validator router - /api/validator/check-url, rate limited per user and IP."""

from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse
from starlette.requests import Request

from engage.deps import get_server
from engage.models import CheckUrlRequest
from engage.url_check import inspect_url

router = APIRouter()


@router.post("/api/validator/check-url")
async def check_url(request: Request, req: CheckUrlRequest, authorization: str = Header(default="")):
    srv = get_server(request)
    caller = srv.auth.resolve_user(authorization)
    ip_address = request.client.host if request.client else None
    window = await srv.rate_limiter.enforce(caller["user_id"] if caller else None, ip_address)

    result = inspect_url(req.url)
    headers = {}
    if window.get("reset_at") is not None:
        headers = {
            "X-RateLimit-Limit": str(window["limit"]),
            "X-RateLimit-Remaining": str(max(0, window["limit"] - window["current"])),
            "X-RateLimit-Reset": str(int(window["reset_at"])),
        }
    return JSONResponse(result, status_code=200 if result["valid"] else 400, headers=headers)

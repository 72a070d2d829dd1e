"""Health router - /health liveness check."""

from fastapi import APIRouter
from starlette.requests import Request

from engage import __version__
from engage.deps import get_server

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    srv = get_server(request)
    return {
        "status": "ok",
        "service": "engage-rewards",
        "version": __version__,
        "timezone": srv.clock.tz_name,
        "date_key": srv.clock.date_key(),
    }

"""Earn router - /api/earn/queue and /api/earn/start."""

from fastapi import APIRouter, Depends, Query
from starlette.requests import Request

from engage.deps import current_user, get_server
from engage.models import StartRequest
from engage.scoring import DEFAULT_QUEUE_SIZE, MAX_QUEUE_SIZE

router = APIRouter()


@router.get("/api/earn/queue")
async def earn_queue(
    request: Request,
    limit: int = Query(default=DEFAULT_QUEUE_SIZE, ge=1, le=MAX_QUEUE_SIZE),
    user: dict = Depends(current_user),
):
    """Ranked campaigns the caller can claim right now."""
    srv = get_server(request)
    items = await srv.scoring.build_queue(user["user_id"], limit=limit)
    return {"items": items, "count": len(items)}


@router.post("/api/earn/start")
async def earn_start(request: Request, req: StartRequest, user: dict = Depends(current_user)):
    srv = get_server(request)
    return await srv.claims.start(user["user_id"], req.campaign_id)

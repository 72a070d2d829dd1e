"""Admin router - wallet repair, audit and enforcement logs, limit config, maintenance."""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from starlette.requests import Request

from engage.deps import admin_user, get_server
from engage.errors import NotFound
from engage.limits_config import CONFIG_MODELS
from engage.models import AdjustRequest, LimitUpdateRequest

router = APIRouter()

COUNTER_RETENTION_DAYS = 7


@router.post("/api/admin/users/{user_id}/adjust")
async def adjust_balance(request: Request, user_id: str, req: AdjustRequest, admin: dict = Depends(admin_user)):
    srv = get_server(request)
    return await srv.ledger.admin_adjust(
        admin_id=admin["user_id"],
        user_id=user_id,
        amount=req.amount,
        direction=req.direction,
        reason=req.reason,
        idempotency_key=req.idempotency_key,
    )


@router.post("/api/admin/users/{user_id}/recalculate")
async def recalculate_wallet(request: Request, user_id: str, admin: dict = Depends(admin_user)):
    srv = get_server(request)
    return await srv.ledger.recalculate_aggregates(user_id, actor_type="ADMIN", actor_id=admin["user_id"])


@router.get("/api/admin/audit-logs")
async def audit_logs(
    request: Request,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    actor_type: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    admin: dict = Depends(admin_user),
):
    srv = get_server(request)
    items = await srv.ledger.list_audit_logs(
        user_id=user_id, action=action, actor_type=actor_type, limit=limit, offset=offset,
    )
    return {"items": items, "limit": limit, "offset": offset}


@router.get("/api/admin/enforcement-logs")
async def enforcement_logs(
    request: Request,
    user_id: Optional[str] = None,
    campaign_id: Optional[int] = None,
    outcome: Optional[str] = None,
    since: Optional[float] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    admin: dict = Depends(admin_user),
):
    srv = get_server(request)
    items = await srv.eligibility.list_enforcement_logs(
        user_id=user_id, campaign_id=campaign_id, outcome=outcome, since=since,
        limit=limit, offset=offset,
    )
    total = await srv.storage.enforcement.count(
        user_id=user_id, campaign_id=campaign_id, outcome=outcome, since=since,
    )
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.get("/api/admin/limits")
async def list_limits(request: Request, admin: dict = Depends(admin_user)):
    srv = get_server(request)
    return await srv.config.describe()


@router.get("/api/admin/limits/{key}")
async def get_limit(request: Request, key: str, admin: dict = Depends(admin_user)):
    if key not in CONFIG_MODELS:
        raise NotFound(f"Unknown config key: {key}")
    srv = get_server(request)
    return {"key": key, **(await srv.config.describe())[key]}


@router.put("/api/admin/limits/{key}")
async def put_limit(request: Request, key: str, req: LimitUpdateRequest, admin: dict = Depends(admin_user)):
    if key not in CONFIG_MODELS:
        raise NotFound(f"Unknown config key: {key}")
    srv = get_server(request)
    value = await srv.config.set(key, req.value, req.description)
    return {"key": key, "value": value}


@router.post("/api/admin/maintenance/purge")
async def purge(request: Request, admin: dict = Depends(admin_user)):
    """Drop stale counters, expired sessions and old rate-limit windows."""
    srv = get_server(request)
    cutoff = (srv.clock.localtime() - timedelta(days=COUNTER_RETENTION_DAYS)).strftime("%Y-%m-%d")
    return {
        "counters": await srv.eligibility.purge_counters_before(cutoff),
        "sessions": await srv.sessions.purge_expired(),
        "rate_limit_windows": await srv.rate_limiter.purge_old_windows(),
    }

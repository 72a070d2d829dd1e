"""Wallet router - /api/wallet/balance and transaction history."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from starlette.requests import Request

from engage.deps import current_user, get_server
from engage.ledger import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter()


@router.get("/api/wallet/balance")
async def wallet_balance(request: Request, user: dict = Depends(current_user)):
    srv = get_server(request)
    return await srv.ledger.get_balance(user["user_id"])


@router.get("/api/wallet/transactions")
async def wallet_transactions(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    type: Optional[List[str]] = Query(default=None),
    status: Optional[List[str]] = Query(default=None),
    campaign_id: Optional[int] = None,
    since: Optional[float] = None,
    until: Optional[float] = None,
    search: Optional[str] = None,
    user: dict = Depends(current_user),
):
    """Paginated ledger rows for the caller, newest first."""
    srv = get_server(request)
    return await srv.ledger.list_transactions(
        user["user_id"],
        page=page,
        limit=limit,
        types=type,
        statuses=status,
        campaign_id=campaign_id,
        since=since,
        until=until,
        search=search,
    )


@router.get("/api/wallet/transactions/{txn_id}")
async def wallet_transaction(request: Request, txn_id: int, user: dict = Depends(current_user)):
    srv = get_server(request)
    return await srv.ledger.get_transaction(user["user_id"], txn_id)

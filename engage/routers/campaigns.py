"""Campaigns router - /api/campaigns CRUD for the caller's own campaigns."""

from fastapi import APIRouter, Depends
from starlette.requests import Request

from engage.deps import current_user, get_server
from engage.models import CampaignCreateRequest, CampaignUpdateRequest

router = APIRouter()


@router.get("/api/campaigns")
async def list_campaigns(request: Request, user: dict = Depends(current_user)):
    srv = get_server(request)
    items = await srv.campaigns.list_for_owner(user["user_id"])
    return {"items": items, "count": len(items)}


@router.post("/api/campaigns", status_code=201)
async def create_campaign(request: Request, req: CampaignCreateRequest, user: dict = Depends(current_user)):
    srv = get_server(request)
    return await srv.campaigns.create(
        owner_id=user["user_id"],
        title=req.title,
        url=req.url,
        payout=req.payout,
        total_completions=req.total_completions,
        questions=req.questions,
        watch_duration=req.watch_duration,
    )


@router.get("/api/campaigns/{campaign_id}")
async def get_campaign(request: Request, campaign_id: int, user: dict = Depends(current_user)):
    srv = get_server(request)
    return await srv.campaigns.get(campaign_id, owner_id=user["user_id"])


@router.patch("/api/campaigns/{campaign_id}")
async def update_campaign(
    request: Request, campaign_id: int, req: CampaignUpdateRequest, user: dict = Depends(current_user),
):
    srv = get_server(request)
    return await srv.campaigns.update(user["user_id"], campaign_id, req.model_dump(exclude_none=True))


@router.delete("/api/campaigns/{campaign_id}")
async def delete_campaign(request: Request, campaign_id: int, user: dict = Depends(current_user)):
    srv = get_server(request)
    return await srv.campaigns.delete(user["user_id"], campaign_id)

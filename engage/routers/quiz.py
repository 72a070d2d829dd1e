"""Quiz router - /api/quiz/{campaign_id} and /api/quiz/submit."""

from fastapi import APIRouter, Depends
from starlette.requests import Request

from engage.deps import current_user, get_server
from engage.models import SubmitRequest

router = APIRouter()


@router.post("/api/quiz/submit")
async def submit_quiz(request: Request, req: SubmitRequest, user: dict = Depends(current_user)):
    srv = get_server(request)
    answers = [a.model_dump() for a in req.answers]
    return await srv.claims.submit(user["user_id"], req.token, answers)


@router.get("/api/quiz/{campaign_id}")
async def get_quiz(request: Request, campaign_id: int, user: dict = Depends(current_user)):
    srv = get_server(request)
    return await srv.campaigns.quiz_for(campaign_id, viewer_id=user["user_id"])

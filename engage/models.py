"""Pydantic request models for the REST API."""

from typing import List, Optional
from pydantic import BaseModel


class StartRequest(BaseModel):
    campaign_id: int


class AnswerItem(BaseModel):
    question_id: int
    answer: Optional[str] = None


class SubmitRequest(BaseModel):
    token: str
    answers: List[AnswerItem]


class CampaignCreateRequest(BaseModel):
    title: str
    url: str
    payout: float
    total_completions: int
    watch_duration: int = 30
    questions: List[dict]


class CampaignUpdateRequest(BaseModel):
    title: Optional[str] = None
    url: Optional[str] = None
    payout: Optional[float] = None
    watch_duration: Optional[int] = None
    is_paused: Optional[bool] = None


class CheckUrlRequest(BaseModel):
    url: str


class AdjustRequest(BaseModel):
    amount: float
    direction: str  # "credit" or "debit"
    reason: str
    idempotency_key: Optional[str] = None


class LimitUpdateRequest(BaseModel):
    value: dict
    description: str = ""

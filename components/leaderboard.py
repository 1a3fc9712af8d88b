# components/leaderboard.py
from typing import Dict, List, Optional
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel
from core.leaderboards import LeaderboardStore
from core.rate_limiter_slowapi import api_limiter
from data.models import MemberSnapshot

router = APIRouter(prefix="/api/leaderboards", tags=["Leaderboards"])


class LeaderboardEntity(BaseModel):
    uuid: str
    profile: Optional[str] = None


class LeaderboardItem(BaseModel):
    entity: LeaderboardEntity
    value: float


class LeaderboardResponse(BaseModel):
    name: str
    unit: Optional[str] = None
    list: List[LeaderboardItem]


def get_store(request: Request) -> LeaderboardStore:
    return request.app.state.leaderboards


@router.get("", response_model=Dict[str, List[str]])
@api_limiter.limit("60/minute")
async def get_leaderboards_categorized(request: Request):
    """Names of every member leaderboard, grouped by category."""
    return await get_store(request).all_leaderboards_categorized()


@router.get("/{name}", response_model=LeaderboardResponse)
@api_limiter.limit("120/minute")
async def get_leaderboard(request: Request, name: str):
    """Top members of one leaderboard, best first."""
    leaderboard = await get_store(request).get_leaderboard(name)
    if leaderboard is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Leaderboard not found")
    return leaderboard


class QueuedUpdatesResponse(BaseModel):
    queued: int
    pending: int


@router.post("/members", response_model=QueuedUpdatesResponse, status_code=status.HTTP_202_ACCEPTED)
@api_limiter.limit("600/minute")
async def queue_member_updates(request: Request, members: List[MemberSnapshot]):
    """Queue leaderboard updates for freshly cleaned profile members."""
    dispatcher = request.app.state.dispatcher
    for member in members:
        dispatcher.enqueue(member)
    return QueuedUpdatesResponse(queued=len(members), pending=dispatcher.pending)

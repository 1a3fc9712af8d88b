# components/auctions.py
from typing import Dict, List
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel
from core.hypixel import UpstreamUnavailable
from core.rate_limiter_slowapi import api_limiter
from data.models import SimpleAuction

router = APIRouter(prefix="/api", tags=["Auctions"])


class ItemAuctionsResponse(BaseModel):
    item_id: str
    auctions: List[SimpleAuction]


@router.get("/auctions/items", response_model=Dict[str, str])
@api_limiter.limit("60/minute")
async def get_auction_items(request: Request):
    """Every item with an auction history, mapped to its display name."""
    try:
        return await request.app.state.resources.auction_items()
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/auctions/{item_id}", response_model=ItemAuctionsResponse)
@api_limiter.limit("120/minute")
async def get_item_auctions(request: Request, item_id: str):
    """Most recent ended auctions of an item, oldest first."""
    histories = await request.app.state.auction_sync.load_histories([item_id])
    if item_id not in histories:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No auctions found for this item")
    return ItemAuctionsResponse(item_id=item_id, auctions=histories[item_id])


@router.get("/election", response_model=dict)
@api_limiter.limit("60/minute")
async def get_election(request: Request):
    try:
        return await request.app.state.resources.election()
    except UpstreamUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

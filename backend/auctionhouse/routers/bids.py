"""Bids router — place a bid and read an auction's bid history."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from auctionhouse.database import get_db
from auctionhouse.schemas.bid import BidCreate, BidResponse
from auctionhouse.middleware.auth import get_current_user_id
from auctionhouse.services import auction_service, bid_service

router = APIRouter(prefix="/api", tags=["bids"])


@router.post("/auctions/{auction_id}/bids", response_model=BidResponse, status_code=201)
def place_bid(
    auction_id: str,
    req: BidCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Bid on an active auction. Must beat the current highest bid."""
    try:
        bid = bid_service.place_bid(db, auction_id, user_id, req.amount)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    return BidResponse.model_validate(bid)


@router.get("/auctions/{auction_id}/bids", response_model=list[BidResponse])
def list_bids(
    auction_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Bid history, newest first."""
    if not auction_service.get_auction(db, auction_id):
        raise HTTPException(status_code=404, detail="Auction not found")
    return [BidResponse.model_validate(b) for b in bid_service.list_bids(db, auction_id, limit=limit)]


@router.get("/bids/my", response_model=list[BidResponse])
def my_bids(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return [BidResponse.model_validate(b) for b in bid_service.list_user_bids(db, user_id)]

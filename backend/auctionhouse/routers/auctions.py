"""Auctions router — creation, lookup, relist history, cancellation and
seller actions on unsold auctions."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from auctionhouse.database import get_db
from auctionhouse.schemas.auction import AuctionCreate, AuctionResponse, ConvertRequest, ConvertResponse
from auctionhouse.middleware.auth import get_current_user_id
from auctionhouse.services import auction_service
from auctionhouse.services.catalog_service import ItemRef

router = APIRouter(prefix="/api/auctions", tags=["auctions"])


@router.post("", response_model=AuctionResponse, status_code=201)
def create_auction(
    req: AuctionCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Put one of the caller's catalog items up for auction."""
    try:
        auction = auction_service.create_auction(
            db,
            seller_id=user_id,
            item_ref=ItemRef(req.item_type, req.item_id),
            starting_bid=req.starting_bid,
            reserve_price=req.reserve_price,
            starts_at=req.starts_at,
            ends_at=req.ends_at,
            payment_window_hours=req.payment_window_hours,
            end_policy_on_no_sale=req.end_policy_on_no_sale,
            relist_delay_hours=req.relist_delay_hours,
            relist_max_count=req.relist_max_count,
            convert_price_source=req.convert_price_source,
            convert_markup_bps=req.convert_markup_bps,
            manual_fixed_price=req.manual_fixed_price,
        )
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    return AuctionResponse.model_validate(auction)


@router.get("", response_model=list[AuctionResponse])
def list_auctions(
    status: Optional[str] = Query(None),
    seller_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    auctions = auction_service.list_auctions(db, status=status, seller_id=seller_id, limit=limit)
    return [AuctionResponse.model_validate(a) for a in auctions]


@router.get("/{auction_id}", response_model=AuctionResponse)
def get_auction(auction_id: str, db: Session = Depends(get_db)):
    auction = auction_service.get_auction(db, auction_id)
    if not auction:
        raise HTTPException(status_code=404, detail="Auction not found")
    return AuctionResponse.model_validate(auction)


@router.get("/{auction_id}/history", response_model=list[AuctionResponse])
def relist_history(auction_id: str, db: Session = Depends(get_db)):
    """Every auction in this auction's relist chain, oldest first."""
    try:
        chain = auction_service.relist_history(db, auction_id)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    return [AuctionResponse.model_validate(a) for a in chain]


@router.post("/{auction_id}/cancel", response_model=AuctionResponse)
def cancel_auction(
    auction_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Cancel a scheduled auction, or an active one that has no bids yet."""
    try:
        auction = auction_service.cancel_auction(db, auction_id, actor_id=user_id)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    return AuctionResponse.model_validate(auction)


@router.post("/{auction_id}/relist", response_model=AuctionResponse, status_code=201)
def relist_auction(
    auction_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Relist an unsold auction right away. Returns the new auction."""
    try:
        child = auction_service.relist_ended(db, auction_id, actor_id=user_id)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    return AuctionResponse.model_validate(child)


@router.post("/{auction_id}/convert", response_model=ConvertResponse)
def convert_auction(
    auction_id: str,
    req: Optional[ConvertRequest] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Sell an unsold auction's item at a fixed price."""
    try:
        price = auction_service.convert_ended(
            db, auction_id, actor_id=user_id, price=req.price if req else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    auction = auction_service.get_auction(db, auction_id)
    return ConvertResponse(auction_id=auction.id, item_type=auction.item_type, item_id=auction.item_id, price=price)


@router.post("/{auction_id}/unlist", response_model=AuctionResponse)
def unlist_auction(
    auction_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Take an unsold auction's item off sale."""
    try:
        auction = auction_service.unlist_ended(db, auction_id, actor_id=user_id)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    return AuctionResponse.model_validate(auction)

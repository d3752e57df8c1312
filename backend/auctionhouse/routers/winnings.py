"""Winnings router — a buyer's auction wins, claim and pay."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from auctionhouse.config import settings
from auctionhouse.database import get_db
from auctionhouse.schemas.win import WinResponse
from auctionhouse.middleware.auth import get_current_user_id
from auctionhouse.services import claim_service
from auctionhouse.services.payment_gateway import PaymentGateway, StubPaymentGateway

router = APIRouter(prefix="/api/winnings", tags=["winnings"])


def get_payment_gateway() -> PaymentGateway:
    return StubPaymentGateway(approve=settings.PAYMENT_STUB_APPROVE)


def _win_to_response(win) -> WinResponse:
    """Convert an AuctionWin ORM model to a response schema."""
    return WinResponse(
        id=win.id,
        auction_id=win.auction_id,
        user_id=win.user_id,
        winning_bid_id=win.winning_bid_id,
        winning_amount=win.winning_amount,
        status=win.status,
        order_id=win.order_id,
        payment_deadline=win.auction.payment_deadline,
        claimed_at=win.claimed_at,
        paid_at=win.paid_at,
        expired_at=win.expired_at,
        created_at=win.created_at,
    )


@router.get("/my", response_model=list[WinResponse])
def my_winnings(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """The caller's auction wins, newest first."""
    return [_win_to_response(w) for w in claim_service.list_user_wins(db, user_id, status=status)]


@router.post("/{win_id}/claim", response_model=WinResponse)
def claim_win(
    win_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Claim a win inside its payment window; creates the order."""
    try:
        win = claim_service.claim(db, win_id, user_id)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    return _win_to_response(win)


@router.post("/{win_id}/pay", response_model=WinResponse)
def pay_win(
    win_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Pay for a claimed win and complete the sale."""
    try:
        win = claim_service.pay(db, win_id, user_id, gateway)
    except ValueError as e:
        raise HTTPException(status_code=getattr(e, "status_code", 400), detail=str(e))
    return _win_to_response(win)

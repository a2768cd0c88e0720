import logging

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from tradehub.core.observability import log_business_event
from tradehub.core.permissions import Caller
from tradehub.core.security import get_current_caller, get_optional_caller
from tradehub.db.session import get_db
from tradehub.schemas.common import CommentIn, ItemCategory, TradeStatus, VoteIn
from tradehub.schemas.trade import TradeCreate, TradeRatingIn, TradeStatusIn, TradeUpdate
from tradehub.services import trades
from tradehub.services.lifecycle import TRADE, add_comment, delete_owned, list_comments
from tradehub.services.reactions import toggle_vote, vote_summary

router = APIRouter(prefix="/trades", tags=["trades"])
logger = logging.getLogger(__name__)


@router.get("")
def list_trades(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    status: TradeStatus | None = None,
    category: ItemCategory | None = None,
    user_id: int | None = None,
    db: Session = Depends(get_db),
):
    return trades.list_trades(db, page=page, limit=limit, status=status, category=category, user_id=user_id)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_trade(
    payload: TradeCreate,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    trade = trades.create_trade(db, caller, payload)
    log_business_event(logger, request, event="trade.create", caller=caller, trade_id=trade["id"])
    return trade


@router.get("/{trade_id}")
def get_trade(trade_id: int, db: Session = Depends(get_db)):
    return trades.get_trade(db, trade_id)


@router.put("/{trade_id}")
def update_trade(
    trade_id: int,
    payload: TradeUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return trades.update_trade(db, caller, trade_id, payload)


@router.patch("/{trade_id}/status")
def set_trade_status(
    trade_id: int,
    payload: TradeStatusIn,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    trade = trades.set_trade_status(db, caller, trade_id, payload.status)
    log_business_event(logger, request, event="trade.status", caller=caller, trade_id=trade_id, status=payload.status)
    return trade


@router.delete("/{trade_id}")
def delete_trade(
    trade_id: int,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    result = delete_owned(db, caller, TRADE, trade_id)
    log_business_event(logger, request, event="trade.delete", caller=caller, trade_id=trade_id)
    return {"message": "Trade deleted", **result}


@router.get("/{trade_id}/comments")
def get_comments(trade_id: int, db: Session = Depends(get_db)):
    return list_comments(db, TRADE, trade_id)


@router.post("/{trade_id}/comments", status_code=status.HTTP_201_CREATED)
def post_comment(
    trade_id: int,
    payload: CommentIn,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return add_comment(db, caller, TRADE, trade_id, payload.content)


@router.get("/{trade_id}/votes")
def get_votes(
    trade_id: int,
    db: Session = Depends(get_db),
    caller: Caller | None = Depends(get_optional_caller),
):
    trades.get_trade(db, trade_id)
    return vote_summary(db, TRADE, trade_id, caller.user_id if caller else None)


@router.post("/{trade_id}/vote")
def vote(
    trade_id: int,
    payload: VoteIn,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return toggle_vote(db, TRADE, trade_id, caller.user_id, payload.vote_type)


@router.post("/{trade_id}/ratings", status_code=status.HTTP_201_CREATED)
def rate_trade(
    trade_id: int,
    payload: TradeRatingIn,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    rating = trades.rate_trade(db, caller, trade_id, payload)
    log_business_event(logger, request, event="trade.rate", caller=caller, trade_id=trade_id, rating=payload.rating)
    return rating

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from tradehub.core.observability import log_business_event
from tradehub.core.permissions import Caller
from tradehub.core.security import get_current_caller
from tradehub.db.session import get_db
from tradehub.schemas.moderation import ReportIn
from tradehub.services import moderation

router = APIRouter(prefix="/reports", tags=["reports"])
logger = logging.getLogger(__name__)


@router.post("", status_code=status.HTTP_201_CREATED)
def file_report(
    payload: ReportIn,
    request: Request,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    report = moderation.file_report(db, caller, payload.target_type, payload.target_id, payload.reason)
    log_business_event(
        logger,
        request,
        event="report.file",
        caller=caller,
        target_type=payload.target_type,
        target_id=payload.target_id,
    )
    return report

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from closerflow.core.config import settings
from closerflow.core.database import get_db
from closerflow.core.deps import get_current_user
from closerflow.core.profile_cache import UserProfile
from closerflow.routes.closings import ClosingStatsOut
from closerflow.services import closing_service, stats_service
from closerflow.services.analysis_client import AnalysisError, AnalysisNotConfigured, CashAnalysisClient

router = APIRouter()
logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    message: str
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class ChatResponse(BaseModel):
    response: str
    stats: ClosingStatsOut


def get_analysis_client() -> CashAnalysisClient:
    return CashAnalysisClient(
        api_url=settings.analysis_api_url,
        api_key=settings.analysis_api_key,
        model=settings.analysis_model,
        timeout=settings.analysis_timeout_seconds,
    )


def current_month(today: Optional[dt.date] = None):
    today = today or dt.date.today()
    first = today.replace(day=1)
    next_month = (first + dt.timedelta(days=32)).replace(day=1)
    return first, next_month - dt.timedelta(days=1)


@router.post("/chat", response_model=ChatResponse)
def chat(
    data: ChatRequest,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
    client: CashAnalysisClient = Depends(get_analysis_client),
):
    """Answer a question about the period's closings; defaults to the current month"""
    message = data.message.strip()
    if not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Mensagem é obrigatória")

    default_start, default_end = current_month()
    start_date = data.start_date or default_start
    end_date = data.end_date or default_end

    closings = closing_service.list_closings(db, user, start_date=start_date, end_date=end_date)
    stats = stats_service.summarize(closings)
    try:
        answer = client.ask(message, stats)
    except AnalysisNotConfigured as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    except AnalysisError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    logger.info("analysis chat by user %s over %s closings", user.id, stats["total_closings"])
    return {"response": answer, "stats": {"start_date": start_date, "end_date": end_date, **stats}}

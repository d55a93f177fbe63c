from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..engine import MasteryEngine, get_engine
from ..schemas import Dashboard, PromotionResult, TimelineEntry


router = APIRouter(prefix="/users/{username}", tags=["progress"])


@router.get("/dashboard", response_model=Dashboard)
def dashboard(username: str, engine: MasteryEngine = Depends(get_engine)):
    return engine.dashboard.dashboard(username)


@router.get("/timeline", response_model=List[TimelineEntry])
def timeline(
    username: str,
    days: Optional[int] = Query(default=None, ge=0, le=365),
    page: int = Query(default=0, ge=0),
    size: Optional[int] = Query(default=None, ge=1, le=200),
    engine: MasteryEngine = Depends(get_engine),
):
    offset = page * size if size else 0
    return engine.dashboard.timeline(username, days, offset=offset, limit=size)


@router.post("/promotion", response_model=PromotionResult)
def check_promotion(username: str, engine: MasteryEngine = Depends(get_engine)):
    return engine.promotion.evaluate(username)

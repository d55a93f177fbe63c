from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..engine import MasteryEngine, get_engine
from ..schemas import BatchGradeResult, LessonView, SkillRecordView


router = APIRouter(tags=["skills"])


class OutcomeRequest(BaseModel):
    rule_name: str
    success: bool


class BatchRequest(BaseModel):
    # Range checks live in the ledger so every bad count is a 400
    correct_count: int
    total_count: int


@router.post("/users/{username}/skills/outcomes", response_model=SkillRecordView)
def record_outcome(username: str, req: OutcomeRequest, engine: MasteryEngine = Depends(get_engine)):
    return engine.ledger.record_outcome(username, req.rule_name, req.success)


@router.get("/users/{username}/skills", response_model=List[SkillRecordView])
def list_skills(username: str, engine: MasteryEngine = Depends(get_engine)):
    return engine.ledger.list_records(username)


@router.get("/users/{username}/skills/weaknesses", response_model=List[SkillRecordView])
def weaknesses(
    username: str,
    threshold: Optional[int] = Query(default=None, ge=0, le=101),
    engine: MasteryEngine = Depends(get_engine),
):
    return engine.ledger.weaknesses(username, threshold)


@router.get("/users/{username}/skills/due", response_model=List[SkillRecordView])
def due_skills(
    username: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    engine: MasteryEngine = Depends(get_engine),
):
    return engine.ledger.due_records(username, limit)


@router.get("/skills/{record_id}", response_model=SkillRecordView)
def get_skill(record_id: int, engine: MasteryEngine = Depends(get_engine)):
    return engine.ledger.get_record(record_id)


@router.post("/skills/{record_id}/batch", response_model=BatchGradeResult)
def grade_batch(record_id: int, req: BatchRequest, engine: MasteryEngine = Depends(get_engine)):
    return engine.ledger.grade_batch(record_id, req.correct_count, req.total_count)


@router.get("/skills/{record_id}/lessons", response_model=List[LessonView])
def related_lessons(
    record_id: int,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=100),
    engine: MasteryEngine = Depends(get_engine),
):
    return engine.ledger.related_lessons(record_id, offset=page * size, limit=size)

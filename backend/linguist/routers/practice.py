from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..engine import MasteryEngine, get_engine
from ..schemas import ChallengeOutcome, ChallengeResultView, LessonPracticeResult, LessonView, PracticeSessionView


router = APIRouter(prefix="/users/{username}", tags=["practice"])


class LessonRequest(BaseModel):
    topic: str
    grammar_focus: List[str] = Field(default_factory=list)
    vocabulary_list: Optional[str] = Field(default=None, description="One 'word = translation' pair per line")


class LessonPracticeRequest(BaseModel):
    accuracy: int = Field(ge=0, le=100)
    # Rule names of the errors found in the attempt, one entry per error
    error_rules: List[str] = Field(default_factory=list)
    feedback: Optional[str] = None


class WritingResultRequest(BaseModel):
    score: int = Field(ge=0, le=100)
    error_rules: List[str] = Field(default_factory=list)
    title: Optional[str] = None
    feedback: Optional[str] = None


class ListeningResultRequest(BaseModel):
    score: int = Field(ge=0, le=100)
    title: Optional[str] = None
    feedback: Optional[str] = None


@router.post("/lessons", response_model=LessonView, status_code=201)
def register_lesson(username: str, req: LessonRequest, engine: MasteryEngine = Depends(get_engine)):
    return engine.practice.register_lesson(username, req.topic, req.grammar_focus, req.vocabulary_list)


@router.get("/lessons", response_model=List[LessonView])
def list_lessons(username: str, engine: MasteryEngine = Depends(get_engine)):
    return engine.practice.list_lessons(username)


@router.get("/lessons/{lesson_id}", response_model=LessonView)
def get_lesson(username: str, lesson_id: int, engine: MasteryEngine = Depends(get_engine)):
    return engine.practice.get_lesson(username, lesson_id)


@router.post("/lessons/{lesson_id}/practice", response_model=LessonPracticeResult)
def practice_lesson(
    username: str,
    lesson_id: int,
    req: LessonPracticeRequest,
    engine: MasteryEngine = Depends(get_engine),
):
    return engine.practice.record_lesson_practice(username, lesson_id, req.accuracy, req.error_rules, req.feedback)


@router.post("/challenges/writing", response_model=ChallengeOutcome)
def writing_result(username: str, req: WritingResultRequest, engine: MasteryEngine = Depends(get_engine)):
    return engine.practice.record_writing_result(username, req.score, req.error_rules, req.title, req.feedback)


@router.post("/challenges/listening", response_model=ChallengeOutcome)
def listening_result(username: str, req: ListeningResultRequest, engine: MasteryEngine = Depends(get_engine)):
    return engine.practice.record_listening_result(username, req.score, req.title, req.feedback)


@router.get("/lessons/{lesson_id}/sessions", response_model=List[PracticeSessionView])
def lesson_sessions(
    username: str,
    lesson_id: int,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=5, ge=1, le=100),
    engine: MasteryEngine = Depends(get_engine),
):
    return engine.practice.lesson_sessions(username, lesson_id, offset=page * size, limit=size)


@router.delete("/sessions/{session_id}", response_model=LessonView)
def delete_session(username: str, session_id: int, engine: MasteryEngine = Depends(get_engine)):
    return engine.practice.delete_session(username, session_id)


@router.get("/challenges/{kind}", response_model=List[ChallengeResultView])
def challenge_history(
    username: str,
    kind: str,
    page: int = Query(default=0, ge=0),
    size: int = Query(default=10, ge=1, le=100),
    engine: MasteryEngine = Depends(get_engine),
):
    return engine.practice.challenge_history(username, kind, offset=page * size, limit=size)

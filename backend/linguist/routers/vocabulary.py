from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..engine import MasteryEngine, get_engine
from ..schemas import VocabularyCardView, VocabularyStats


router = APIRouter(tags=["vocabulary"])


class CardEntry(BaseModel):
    word: str
    translation: str
    context_note: Optional[str] = None


class ImportRequest(BaseModel):
    # Either structured entries, raw "word = translation" lines, or both
    entries: List[CardEntry] = Field(default_factory=list)
    vocabulary_list: Optional[str] = Field(default=None, description="One 'word = translation' pair per line")
    context_note: Optional[str] = None


class ImportResponse(BaseModel):
    created: List[VocabularyCardView]
    created_count: int


class ReviewRequest(BaseModel):
    correct: bool


@router.post("/users/{username}/vocabulary/import", response_model=ImportResponse)
def import_vocabulary(username: str, req: ImportRequest, engine: MasteryEngine = Depends(get_engine)):
    created: List[VocabularyCardView] = []
    if req.entries:
        created.extend(
            engine.vocabulary.import_cards(
                username,
                [(e.word, e.translation, e.context_note or req.context_note) for e in req.entries],
            )
        )
    if req.vocabulary_list:
        created.extend(engine.vocabulary.import_vocabulary_list(username, req.vocabulary_list, req.context_note))
    if not req.entries and not req.vocabulary_list:
        # Still reports an unknown user as 404
        engine.vocabulary.import_cards(username, [])
    return ImportResponse(created=created, created_count=len(created))


@router.get("/users/{username}/vocabulary", response_model=List[VocabularyCardView])
def list_vocabulary(username: str, engine: MasteryEngine = Depends(get_engine)):
    return engine.vocabulary.list_cards(username)


@router.get("/users/{username}/vocabulary/due", response_model=List[VocabularyCardView])
def due_vocabulary(
    username: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    engine: MasteryEngine = Depends(get_engine),
):
    return engine.vocabulary.due_cards(username, limit)


@router.get("/users/{username}/vocabulary/stats", response_model=VocabularyStats)
def vocabulary_stats(username: str, engine: MasteryEngine = Depends(get_engine)):
    return engine.vocabulary.stats(username)


@router.post("/vocabulary/{card_id}/review", response_model=VocabularyCardView)
def review_card(card_id: int, req: ReviewRequest, engine: MasteryEngine = Depends(get_engine)):
    if req.correct:
        return engine.vocabulary.record_correct(card_id)
    return engine.vocabulary.record_incorrect(card_id)


@router.get("/vocabulary/{card_id}", response_model=VocabularyCardView)
def get_card(card_id: int, engine: MasteryEngine = Depends(get_engine)):
    return engine.vocabulary.get_card(card_id)

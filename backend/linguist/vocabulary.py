"""Vocabulary spaced repetition.

Mirrors the skill ledger for single words: larger reward for a correct
answer, no fail counter, same four review buckets. Cards live in their own
table, so a word and a grammar rule spelled the same never meet.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from .db import unit_of_work
from .errors import NotFound
from .locks import KeyedLocks
from .models import VocabularyCard, utcnow
from .policy import (
    FAILURE_RECHECK,
    MASTERED_THRESHOLD,
    VOCAB_CORRECT_REWARD,
    VOCAB_INCORRECT_PENALTY,
    clamp_mastery,
    parse_vocabulary_list,
    schedule_from_mastery,
)
from .schemas import VocabularyCardView, VocabularyStats
from .settings import settings
from .users import require_user


logger = logging.getLogger(__name__)


def card_key(username: str, word: str) -> tuple:
    return ("vocab", username, word)


def apply_correct(card: VocabularyCard, now: datetime) -> None:
    card.review_count = (card.review_count or 0) + 1
    card.mastery_level = clamp_mastery((card.mastery_level or 0) + VOCAB_CORRECT_REWARD)
    card.next_review_at = now + schedule_from_mastery(card.mastery_level)


def apply_incorrect(card: VocabularyCard, now: datetime) -> None:
    card.review_count = (card.review_count or 0) + 1
    card.mastery_level = clamp_mastery((card.mastery_level or 0) - VOCAB_INCORRECT_PENALTY)
    card.next_review_at = now + FAILURE_RECHECK


class VocabularySRS:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def import_cards(
        self,
        username: str,
        entries: Iterable[Tuple[str, str, Optional[str]]],
    ) -> List[VocabularyCardView]:
        """Create cards for words the user does not have yet.

        ``entries`` are ``(word, translation, context_note)``. A word that
        already exists, or appears earlier in the same batch, is skipped, so
        the first translation ever imported is the one kept.
        """
        cleaned: List[Tuple[str, str, Optional[str]]] = []
        seen = set()
        for word, translation, context_note in entries:
            word = (word or "").strip()
            translation = (translation or "").strip()
            if not word or not translation or word in seen:
                continue
            seen.add(word)
            cleaned.append((word, translation, context_note))

        created: List[VocabularyCardView] = []
        with self._locks.hold(("vocab-import", username)):
            with unit_of_work(self._session_factory) as db:
                require_user(db, username)
                if cleaned:
                    existing = set(
                        db.scalars(
                            select(VocabularyCard.word).where(
                                VocabularyCard.username == username,
                                VocabularyCard.word.in_([w for w, _, _ in cleaned]),
                            )
                        )
                    )
                else:
                    existing = set()
                now = self._clock()
                cards = []
                for word, translation, context_note in cleaned:
                    if word in existing:
                        continue
                    card = VocabularyCard(
                        username=username,
                        word=word,
                        translation=translation,
                        context_note=context_note,
                        mastery_level=0,
                        review_count=0,
                        next_review_at=now,
                        created_at=now,
                    )
                    db.add(card)
                    cards.append(card)
                db.flush()
                created = [VocabularyCardView.model_validate(c) for c in cards]

        logger.debug("imported %d of %d vocabulary entries for %s", len(created), len(cleaned), username)
        return created

    def import_vocabulary_list(
        self,
        username: str,
        text: Optional[str],
        context_note: Optional[str] = None,
    ) -> List[VocabularyCardView]:
        pairs = parse_vocabulary_list(text)
        return self.import_cards(username, [(w, t, context_note) for w, t in pairs])

    def _review(self, card_id: int, correct: bool) -> VocabularyCardView:
        with unit_of_work(self._session_factory) as db:
            card = db.get(VocabularyCard, card_id)
            if card is None:
                raise NotFound("VocabularyCard", card_id)
            key = card_key(card.username, card.word)

        with self._locks.hold(key):
            with unit_of_work(self._session_factory) as db:
                card = db.get(VocabularyCard, card_id)
                if card is None:
                    raise NotFound("VocabularyCard", card_id)
                now = self._clock()
                if correct:
                    apply_correct(card, now)
                else:
                    apply_incorrect(card, now)
                db.flush()
                view = VocabularyCardView.model_validate(card)

        logger.debug(
            "review %s of %r -> mastery %d", "correct" if correct else "incorrect", view.word, view.mastery_level
        )
        return view

    def record_correct(self, card_id: int) -> VocabularyCardView:
        return self._review(card_id, True)

    def record_incorrect(self, card_id: int) -> VocabularyCardView:
        return self._review(card_id, False)

    def get_card(self, card_id: int) -> VocabularyCardView:
        with unit_of_work(self._session_factory) as db:
            card = db.get(VocabularyCard, card_id)
            if card is None:
                raise NotFound("VocabularyCard", card_id)
            return VocabularyCardView.model_validate(card)

    def list_cards(self, username: str) -> List[VocabularyCardView]:
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            stmt = (
                select(VocabularyCard)
                .where(VocabularyCard.username == username)
                .order_by(VocabularyCard.created_at.desc(), VocabularyCard.id.desc())
            )
            return [VocabularyCardView.model_validate(c) for c in db.scalars(stmt)]

    def due_cards(self, username: str, limit: Optional[int] = None) -> List[VocabularyCardView]:
        now = self._clock()
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            stmt = (
                select(VocabularyCard)
                .where(VocabularyCard.username == username, VocabularyCard.next_review_at <= now)
                .order_by(VocabularyCard.next_review_at, VocabularyCard.id)
                .limit(limit or settings.due_queue_limit)
            )
            return [VocabularyCardView.model_validate(c) for c in db.scalars(stmt)]

    def stats(self, username: str) -> VocabularyStats:
        now = self._clock()
        with unit_of_work(self._session_factory) as db:
            require_user(db, username)
            total, mastered, due = db.execute(
                select(
                    func.count(VocabularyCard.id),
                    func.count(VocabularyCard.id).filter(VocabularyCard.mastery_level >= MASTERED_THRESHOLD),
                    func.count(VocabularyCard.id).filter(VocabularyCard.next_review_at <= now),
                ).where(VocabularyCard.username == username)
            ).one()
        return VocabularyStats(total_words=total or 0, mastered_words=mastered or 0, due_for_review=due or 0)

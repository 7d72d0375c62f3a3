"""
Practice Session
================
State machine that walks a learner through the bank in two phases:

    NEW     questions never practiced, in a shuffled order
    REVIEW  questions already practiced, in an independent shuffled order

The controller listens to the bank. A snapshot whose New/Review counts match
the held decks (a mark or note change) refreshes records in place; any other
change rebuilds both decks and restarts the session at position 0.

Per-question scratch state (selected answer, eliminated options, timer) is
reset on every move to a new question.
"""

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence

from .bank import BankManager
from .models import Phase, Question
from .text_parser import shuffled

logger = logging.getLogger(__name__)


class SessionController:
    """
    Drives a practice session over a BankManager.

    The timer is cooperative: the driver calls `tick()` once per elapsed
    second (or `tick(n)` for n seconds). Ticks are ignored while stopped.
    """

    def __init__(self, bank: BankManager, rng: Optional[random.Random] = None):
        self.bank = bank
        self.rng = rng or random.Random()

        self.phase = Phase.NEW
        self.position = 0
        self.new_deck: list[Question] = []
        self.review_deck: list[Question] = []

        self.selected_answer: Optional[str] = None
        self.eliminated_options: set[str] = set()
        self.elapsed_seconds = 0
        self.timer_running = True

        self.focus_new_only = False
        self.analysis_mode = False
        self.note_draft = ""
        self._note_owner: Optional[str] = None

        self._rebuild(bank.questions)
        bank.subscribe(self.sync)

    def close(self):
        """Stop following bank changes."""
        self.bank.unsubscribe(self.sync)

    # ── Derived state ────────────────────────────────────────────────

    @property
    def active_deck(self) -> list[Question]:
        return self.new_deck if self.phase == Phase.NEW else self.review_deck

    @property
    def current(self) -> Optional[Question]:
        deck = self.active_deck
        if 0 <= self.position < len(deck):
            return deck[self.position]
        return None

    @property
    def has_answered(self) -> bool:
        return self.selected_answer is not None

    @property
    def is_correct(self) -> Optional[bool]:
        """Whether the selected answer is a correct option (None if unanswered)."""
        question = self.current
        if question is None or self.selected_answer is None:
            return None
        return any(
            o.is_correct and o.text == self.selected_answer
            for o in question.options
        )

    @property
    def is_last(self) -> bool:
        return self.position >= len(self.active_deck) - 1

    @property
    def can_advance(self) -> bool:
        """True when `next()` would move to another question."""
        if self.current is None or not self.has_answered:
            return False
        if not self.is_last:
            return True
        return (
            self.phase == Phase.NEW
            and not self.focus_new_only
            and bool(self.review_deck)
        )

    @property
    def can_reshuffle(self) -> bool:
        return self.phase == Phase.REVIEW and len(self.review_deck) > 1

    @property
    def progress(self) -> tuple[int, int]:
        """(1-based position, deck size); (0, 0) when there is no deck."""
        deck = self.active_deck
        if not deck:
            return 0, 0
        return self.position + 1, len(deck)

    def format_elapsed(self) -> str:
        minutes, seconds = divmod(self.elapsed_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}"

    # ── Deck building ────────────────────────────────────────────────

    def sync(self, questions: Sequence[Question]):
        """Bring the decks in line with a new bank snapshot."""
        new = [q for q in questions if not q.practiced]
        review = [q for q in questions if q.practiced]

        if len(new) == len(self.new_deck) and len(review) == len(self.review_deck):
            by_id = {q.id: q for q in questions}
            held = self.new_deck + self.review_deck
            if all(q.id in by_id for q in held):
                self.new_deck = [by_id[q.id] for q in self.new_deck]
                self.review_deck = [by_id[q.id] for q in self.review_deck]
                self._sync_note()
                return

        self._rebuild(questions)

    def _rebuild(self, questions: Sequence[Question]):
        new = [q for q in questions if not q.practiced]
        review = [q for q in questions if q.practiced]

        self.new_deck = shuffled(new, self.rng)
        self.review_deck = shuffled(review, self.rng)
        self.position = 0
        self.phase = Phase.NEW if self.new_deck else Phase.REVIEW
        self._reset_scratch()

        logger.debug(
            f"Decks rebuilt: {len(self.new_deck)} new, "
            f"{len(self.review_deck)} review, phase={self.phase.value}"
        )

    def _reset_scratch(self):
        self.selected_answer = None
        self.eliminated_options = set()
        self.elapsed_seconds = 0
        self.timer_running = True
        self._load_note()

    def _load_note(self):
        question = self.current
        self._note_owner = question.id if question else None
        self.note_draft = (question.user_note or "") if question else ""

    def _sync_note(self):
        """Reload the note draft when the current question changes."""
        question = self.current
        owner = question.id if question else None
        if owner != self._note_owner:
            self._load_note()

    # ── Transitions ──────────────────────────────────────────────────

    def select_answer(self, text: str) -> bool:
        """Record an answer and stop the timer. Only the first answer counts."""
        if self.current is None or self.has_answered:
            return False
        self.selected_answer = text
        self.timer_running = False
        return True

    def toggle_eliminated(self, text: str) -> bool:
        """Cross an option out (or back in). Only before answering."""
        if self.current is None or self.has_answered:
            return False
        if text in self.eliminated_options:
            self.eliminated_options.discard(text)
        else:
            self.eliminated_options.add(text)
        return True

    def next(self) -> bool:
        """
        Move past the answered current question.

        In the NEW phase the question is marked practiced. That changes the
        bank's New/Review split, so the bank notification that follows
        rebuilds the decks. Returns False when nothing moved.
        """
        question = self.current
        if question is None or not self.has_answered:
            return False

        was_new = self.phase == Phase.NEW
        moved = False
        if was_new:
            if self.is_last:
                if not self.focus_new_only and self.review_deck:
                    self.phase = Phase.REVIEW
                    self.position = 0
                    moved = True
            else:
                self.position += 1
                moved = True
        elif not self.is_last:
            self.position += 1
            moved = True

        if moved:
            self._reset_scratch()

        if was_new:
            self.bank.mark_practiced(question.id)

        return moved

    def reshuffle_review(self) -> bool:
        """New random order for the review deck, restarting from the top."""
        if not self.can_reshuffle:
            return False
        self.review_deck = shuffled(self.review_deck, self.rng)
        self.position = 0
        self._reset_scratch()
        return True

    def toggle_focus_new_only(self) -> bool:
        self.focus_new_only = not self.focus_new_only
        return self.focus_new_only

    def toggle_analysis_mode(self) -> bool:
        self.analysis_mode = not self.analysis_mode
        return self.analysis_mode

    def tick(self, seconds: int = 1):
        if self.timer_running and seconds > 0:
            self.elapsed_seconds += seconds

    # ── Bank actions on the current question ─────────────────────────

    def toggle_mark_current(self) -> bool:
        question = self.current
        if question is None:
            return False
        return self.bank.toggle_mark(question.id)

    def save_note(self) -> bool:
        """Store the note draft on the current question."""
        question = self.current
        if question is None:
            return False
        return self.bank.set_note(question.id, self.note_draft)

"""
Question Bank Manager
=====================
Owns the persisted question sequence and every mutation on it.

The in-memory snapshot is replaced wholesale on each change (records are
never edited in place), saved through the store, then pushed to listeners.
A failed save is logged and remembered; the in-memory snapshot stays
authoritative for the running process.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Sequence

from .models import (
    CAPACITY,
    EVICTION_CHUNK,
    AddPlan,
    AddResult,
    BankStats,
    Question,
)
from .storage import PersistenceError, QuestionStore

logger = logging.getLogger(__name__)

Snapshot = tuple[Question, ...]
Listener = Callable[[Snapshot], None]


class BankManager:
    """Capacity-bounded, ordered question bank."""

    def __init__(
        self,
        store: QuestionStore,
        capacity: int = CAPACITY,
        eviction_chunk: int = EVICTION_CHUNK,
    ):
        if capacity < 1 or eviction_chunk < 1:
            raise ValueError("capacity and eviction_chunk must be positive")

        self.store = store
        self.capacity = capacity
        self.eviction_chunk = eviction_chunk
        self.last_persistence_error: Optional[str] = None
        self._listeners: list[Listener] = []
        self._questions: Snapshot = tuple(store.load())

        if len(self._questions) > capacity:
            logger.warning(
                f"Loaded bank holds {len(self._questions)} questions, "
                f"above capacity {capacity}; it will shrink on the next add"
            )

    # ── Snapshot access ──────────────────────────────────────────────

    @property
    def questions(self) -> Snapshot:
        return self._questions

    def __len__(self) -> int:
        return len(self._questions)

    def get(self, question_id: str) -> Optional[Question]:
        for q in self._questions:
            if q.id == question_id:
                return q
        return None

    def stats(self) -> BankStats:
        return BankStats(
            total=len(self._questions),
            new=sum(1 for q in self._questions if not q.practiced),
            review=sum(1 for q in self._questions if q.practiced),
            marked=sum(1 for q in self._questions if q.marked),
            annotated=sum(1 for q in self._questions if q.user_note),
            capacity=self.capacity,
        )

    def history(self, marked_only: bool = False) -> list[Question]:
        """Questions newest first, optionally only the marked ones."""
        items = [q for q in self._questions if q.marked or not marked_only]
        items.reverse()
        return items

    # ── Listeners ────────────────────────────────────────────────────

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ── Adding ───────────────────────────────────────────────────────

    def plan_add(self, new_questions: Iterable[Question]) -> AddPlan:
        """
        Work out what adding `new_questions` would do without committing.

        If the bank would go over capacity, the oldest questions are listed
        for eviction in whole chunks of `eviction_chunk` (one chunk unless
        the batch is larger than a chunk plus the free space). A batch larger
        than the capacity itself keeps only its last `capacity` questions.
        """
        incoming = list(new_questions)
        evicted: list[Question] = []
        discarded = 0

        overflow = len(self._questions) + len(incoming) - self.capacity
        if overflow > 0:
            chunks = -(-overflow // self.eviction_chunk)
            evicted = list(self._questions[:chunks * self.eviction_chunk])

            if len(incoming) > self.capacity:
                discarded = len(incoming) - self.capacity
                incoming = incoming[discarded:]

        return AddPlan(
            incoming=incoming,
            evicted=evicted,
            discarded=discarded,
            current_size=len(self._questions),
            capacity=self.capacity,
        )

    def commit(self, plan: AddPlan) -> AddResult:
        """Evict (if planned) and append in one replace-and-save step."""
        evicted_ids = {q.id for q in plan.evicted}
        kept = [q for q in self._questions if q.id not in evicted_ids]
        persisted = self._replace(kept + list(plan.incoming))

        if plan.discarded:
            logger.warning(
                f"Batch larger than capacity: dropped its first "
                f"{plan.discarded} question(s)"
            )
        if plan.evicted:
            logger.info(
                f"Added {len(plan.incoming)} question(s), evicted the oldest "
                f"{len(plan.evicted)}; bank size {len(self._questions)}"
            )
        else:
            logger.info(
                f"Added {len(plan.incoming)} question(s); "
                f"bank size {len(self._questions)}"
            )

        return AddResult(
            added=len(plan.incoming),
            evicted=plan.evicted,
            committed=True,
            persisted=persisted,
        )

    def add(
        self,
        new_questions: Iterable[Question],
        confirm: Optional[Callable[[AddPlan], bool]] = None,
    ) -> AddResult:
        """
        Add questions, evicting the oldest chunk when over capacity.

        When eviction is needed and `confirm` is given, it is shown the plan
        and must return True; otherwise the bank is left unchanged and the
        batch is discarded.
        """
        plan = self.plan_add(new_questions)

        if plan.requires_eviction and confirm is not None and not confirm(plan):
            logger.info(
                f"Add of {len(plan.incoming)} question(s) declined, "
                "bank unchanged"
            )
            return AddResult(added=0, committed=False)

        return self.commit(plan)

    # ── Mutations ────────────────────────────────────────────────────

    def delete(self, question_id: str) -> bool:
        """Remove a question. Returns False if the id is unknown."""
        remaining = [q for q in self._questions if q.id != question_id]
        if len(remaining) == len(self._questions):
            return False

        self._replace(remaining)
        logger.info(f"Deleted question {question_id}")
        return True

    def set_note(self, question_id: str, text: str) -> bool:
        return self._update(question_id, user_note=text)

    def toggle_mark(self, question_id: str) -> bool:
        question = self.get(question_id)
        if question is None:
            return False
        return self._update(question_id, is_marked=not question.marked)

    def mark_practiced(self, question_id: str) -> bool:
        return self._update(question_id, has_been_practiced=True)

    def _update(self, question_id: str, **changes) -> bool:
        """
        Replace one record with an updated copy.
        No-op (no save) when the id is unknown or nothing would change.
        """
        index = next(
            (i for i, q in enumerate(self._questions) if q.id == question_id),
            None,
        )
        if index is None:
            logger.debug(f"Ignoring update for unknown question {question_id}")
            return False

        current = self._questions[index]
        if all(getattr(current, k) == v for k, v in changes.items()):
            return False

        updated = list(self._questions)
        updated[index] = current.model_copy(update=changes)
        self._replace(updated)
        logger.debug(f"Updated question {question_id}: {sorted(changes)}")
        return True

    # ── Persistence ──────────────────────────────────────────────────

    def _replace(self, questions: Sequence[Question]) -> bool:
        """Swap in a new snapshot, save it and notify listeners."""
        self._questions = tuple(questions)
        persisted = self._save()
        for listener in list(self._listeners):
            listener(self._questions)
        return persisted

    def _save(self) -> bool:
        try:
            self.store.save(self._questions)
        except PersistenceError as e:
            self.last_persistence_error = str(e)
            logger.error(f"Failed to persist bank: {e}")
            return False

        self.last_persistence_error = None
        return True

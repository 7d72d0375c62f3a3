"""
Data Models
===========
Pydantic models for questions, parse output and bank operations.
Questions serialize to the camelCase JSON layout used by the persisted bank.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

CAPACITY = 5000
EVICTION_CHUNK = 50


# ─── Enums ────────────────────────────────────────────────────────────────────


class ParseErrorType(str, Enum):
    """Reasons a whole parse call can fail."""
    EMPTY_INPUT = "empty_input"
    MALFORMED_STRUCTURE = "malformed_structure"
    NO_VALID_QUESTIONS = "no_valid_questions"


class Phase(str, Enum):
    """Which deck a practice session is drawing from."""
    NEW = "new"
    REVIEW = "review"


# ─── Question Models ──────────────────────────────────────────────────────────


class Option(BaseModel):
    """A single answer choice."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str
    is_correct: bool = Field(default=False, alias="isCorrect")


class Question(BaseModel):
    """
    A stored multiple-choice question.

    Records are immutable; the bank replaces a record to change its note,
    mark or practiced flag.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    question_text: str = Field(alias="questionText")
    options: tuple[Option, ...]
    explanation: str
    user_note: Optional[str] = Field(default=None, alias="userNote")
    is_marked: Optional[bool] = Field(default=None, alias="isMarked")
    has_been_practiced: Optional[bool] = Field(
        default=None, alias="hasBeenPracticed"
    )

    @model_validator(mode="after")
    def _check_options(self) -> Question:
        if len(self.options) < 2:
            raise ValueError("a question needs at least two options")
        if not any(o.is_correct for o in self.options):
            raise ValueError("a question needs at least one correct option")
        return self

    @property
    def practiced(self) -> bool:
        return bool(self.has_been_practiced)

    @property
    def marked(self) -> bool:
        return bool(self.is_marked)

    @property
    def correct_options(self) -> list[Option]:
        return [o for o in self.options if o.is_correct]

    def to_json(self) -> dict:
        """Dump in the persisted camelCase layout, omitting unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ─── Parse Result Models ──────────────────────────────────────────────────────


class ParseError(BaseModel):
    """A parse failure; the whole call produced nothing."""
    type: ParseErrorType
    message: str


class ParseResult(BaseModel):
    """
    Output of one parse call.

    `pairs_detected` and `pairs_skipped` are diagnostics only; a skipped
    pair is never reported as an error on its own.
    """
    questions: list[Question] = Field(default_factory=list)
    error: Optional[ParseError] = None
    pairs_detected: int = 0
    pairs_skipped: int = 0

    @computed_field
    @property
    def ok(self) -> bool:
        return self.error is None


# ─── Bank Operation Models ────────────────────────────────────────────────────


class AddPlan(BaseModel):
    """
    What an add would do, computed before anything is committed.
    `evicted` is the exact list of oldest questions that would be dropped.
    """
    incoming: list[Question] = Field(default_factory=list)
    evicted: list[Question] = Field(default_factory=list)
    discarded: int = Field(
        default=0,
        description="Questions dropped from a batch larger than the capacity",
    )
    current_size: int = 0
    capacity: int = CAPACITY

    @computed_field
    @property
    def requires_eviction(self) -> bool:
        return bool(self.evicted)

    @computed_field
    @property
    def resulting_size(self) -> int:
        return self.current_size - len(self.evicted) + len(self.incoming)


class AddResult(BaseModel):
    """Outcome of an add; `committed` is False when the caller declined."""
    added: int = 0
    evicted: list[Question] = Field(default_factory=list)
    committed: bool = False
    persisted: bool = False


class BankStats(BaseModel):
    """Counts over the current bank snapshot."""
    total: int = 0
    new: int = 0
    review: int = 0
    marked: int = 0
    annotated: int = 0
    capacity: int = CAPACITY

    @computed_field
    @property
    def usage_percent(self) -> float:
        if self.capacity == 0:
            return 0.0
        return round(self.total / self.capacity * 100, 2)

"""
Test Suite for the Practice Session
===================================
Deck building, phase transitions, scratch state and the timer.
"""

from __future__ import annotations

import random

from qbank.bank import BankManager
from qbank.models import Option, Phase, Question
from qbank.session import SessionController
from qbank.storage import MemoryStore
from qbank.text_parser import shuffled


def make_question(n, practiced: bool = False, **fields) -> Question:
    return Question(
        id=f"q{n}",
        question_text=f"Question {n}",
        options=[
            Option(text=f"right {n}", is_correct=True),
            Option(text=f"wrong {n}", is_correct=False),
            Option(text=f"other {n}", is_correct=False),
        ],
        explanation=f"Explanation {n}",
        has_been_practiced=practiced,
        **fields,
    )


def make_session(new: int = 0, review: int = 0, seed: int = 0):
    questions = [make_question(i) for i in range(new)]
    questions += [make_question(f"r{i}", practiced=True) for i in range(review)]
    bank = BankManager(MemoryStore(questions))
    return bank, SessionController(bank, rng=random.Random(seed))


def answer(session: SessionController):
    session.select_answer(session.current.options[0].text)


# ═══════════════════════════════════════════════════════════════════════════════
# DECK BUILDING TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestDeckBuilding:
    """Test initial decks and the rebuild policy."""

    def test_empty_bank(self):
        bank, session = make_session()

        assert session.current is None
        assert session.active_deck == []
        assert session.progress == (0, 0)
        assert not session.select_answer("x")
        assert not session.toggle_eliminated("x")
        assert not session.next()
        assert not session.can_reshuffle

    def test_new_phase_first(self):
        bank, session = make_session(new=3, review=2)

        assert session.phase == Phase.NEW
        assert len(session.new_deck) == 3
        assert len(session.review_deck) == 2
        assert session.position == 0
        assert not session.current.practiced

    def test_review_only_bank_starts_in_review(self):
        bank, session = make_session(review=2)

        assert session.phase == Phase.REVIEW
        assert session.current.practiced

    def test_independent_seeded_shuffles(self):
        new = [make_question(i) for i in range(5)]
        review = [make_question(f"r{i}", practiced=True) for i in range(5)]
        bank = BankManager(MemoryStore(new + review))
        session = SessionController(bank, rng=random.Random(11))

        rng = random.Random(11)
        assert [q.id for q in session.new_deck] == [q.id for q in shuffled(new, rng)]
        assert [q.id for q in session.review_deck] == [q.id for q in shuffled(review, rng)]

    def test_mark_toggle_preserves_state(self):
        bank, session = make_session(review=4)
        session.next()  # ignored: unanswered
        answer(session)
        assert session.next()
        session.toggle_eliminated(session.current.options[1].text)
        session.tick(5)
        order = [q.id for q in session.review_deck]
        current_id = session.current.id

        session.toggle_mark_current()

        assert session.position == 1
        assert [q.id for q in session.review_deck] == order
        assert session.current.id == current_id
        assert session.current.marked
        assert session.eliminated_options == {session.current.options[1].text}
        assert session.elapsed_seconds == 5

    def test_add_rebuilds_and_resets(self):
        bank, session = make_session(review=4)
        answer(session)
        session.next()
        answer(session)
        assert session.position == 1

        bank.add([make_question("fresh")])

        assert session.position == 0
        assert session.phase == Phase.NEW
        assert [q.id for q in session.new_deck] == ["qfresh"]
        assert session.selected_answer is None
        assert session.timer_running

    def test_delete_rebuilds(self):
        bank, session = make_session(new=2, review=2)
        bank.delete(session.review_deck[0].id)

        assert len(session.review_deck) == 1
        assert session.position == 0

    def test_deleting_last_question(self):
        bank, session = make_session(review=1)
        bank.delete(session.current.id)

        assert session.current is None
        assert session.new_deck == []
        assert session.review_deck == []
        assert not session.next()

    def test_emptied_new_phase_switches_to_review(self):
        bank, session = make_session(new=1, review=2)
        bank.delete(session.current.id)

        assert session.phase == Phase.REVIEW
        assert session.current.practiced

    def test_close_stops_following_bank(self):
        bank, session = make_session(new=2)
        session.close()
        bank.add([make_question("late")])

        assert len(session.new_deck) == 2


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSITION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestAnswering:
    """Test answer selection and elimination."""

    def test_select_answer_stops_timer(self):
        bank, session = make_session(new=1)
        session.tick()
        session.tick()

        assert session.select_answer("right 0")
        assert session.selected_answer == "right 0"
        assert not session.timer_running
        assert session.is_correct

        session.tick(10)
        assert session.elapsed_seconds == 2

    def test_second_answer_ignored(self):
        bank, session = make_session(new=1)
        session.select_answer("wrong 0")

        assert not session.select_answer("right 0")
        assert session.selected_answer == "wrong 0"
        assert session.is_correct is False

    def test_toggle_eliminated(self):
        bank, session = make_session(new=1)

        assert session.toggle_eliminated("wrong 0")
        assert session.eliminated_options == {"wrong 0"}
        assert session.toggle_eliminated("wrong 0")
        assert session.eliminated_options == set()

    def test_eliminate_after_answer_refused(self):
        bank, session = make_session(new=1)
        session.select_answer("right 0")

        assert not session.toggle_eliminated("wrong 0")
        assert session.eliminated_options == set()

    def test_elimination_does_not_affect_correctness(self):
        bank, session = make_session(new=1)
        session.toggle_eliminated("right 0")
        session.select_answer("right 0")

        assert session.is_correct


class TestAdvance:
    """Test next() across both phases."""

    def test_unanswered_next_refused(self):
        bank, session = make_session(new=2)
        first = session.current.id

        assert not session.next()
        assert session.current.id == first
        assert not bank.get(first).practiced

    def test_new_phase_marks_practiced_and_rebuilds(self):
        bank, session = make_session(new=3, review=1)
        first = session.current.id
        answer(session)
        session.tick(3)

        assert session.next()

        assert bank.get(first).practiced
        assert len(session.new_deck) == 2
        assert len(session.review_deck) == 2
        assert first not in [q.id for q in session.new_deck]
        assert session.phase == Phase.NEW
        assert session.position == 0
        assert session.selected_answer is None
        assert session.elapsed_seconds == 0
        assert session.timer_running

    def test_last_new_switches_to_review(self):
        bank, session = make_session(new=1, review=2)
        first = session.current.id
        answer(session)

        assert session.can_advance
        assert session.next()

        assert bank.get(first).practiced
        assert session.phase == Phase.REVIEW
        assert session.position == 0
        assert len(session.review_deck) == 3

    def test_last_new_with_focus_is_terminal(self):
        bank, session = make_session(new=1, review=2)
        session.toggle_focus_new_only()
        first = session.current.id
        answer(session)

        assert not session.can_advance
        assert not session.next()
        assert bank.get(first).practiced

    def test_last_new_without_review_is_terminal(self):
        bank, session = make_session(new=1)
        first = session.current.id
        answer(session)

        assert not session.can_advance
        assert not session.next()
        assert bank.get(first).practiced

    def test_review_advance_keeps_order(self):
        bank, session = make_session(review=3)
        order = [q.id for q in session.review_deck]
        saves = bank.store.save_count
        assert session.toggle_eliminated(session.current.options[2].text)
        answer(session)

        assert session.next()

        assert session.position == 1
        assert session.current.id == order[1]
        assert [q.id for q in session.review_deck] == order
        assert bank.store.save_count == saves
        assert session.selected_answer is None
        assert session.eliminated_options == set()
        assert session.timer_running

    def test_review_last_is_terminal(self):
        bank, session = make_session(review=2)
        answer(session)
        session.next()
        answer(session)

        assert session.is_last
        assert not session.can_advance
        assert not session.next()
        assert session.position == 1
        assert session.selected_answer is not None

    def test_progress(self):
        bank, session = make_session(review=3)
        answer(session)
        session.next()
        assert session.progress == (2, 3)


class TestReshuffle:
    """Test the review-deck reshuffle."""

    def test_only_in_review_with_two_or_more(self):
        bank, session = make_session(new=1, review=3)
        assert not session.reshuffle_review()

        bank2, single = make_session(review=1)
        assert not single.reshuffle_review()

    def test_reshuffle_resets_position_and_scratch(self):
        bank, session = make_session(review=6, seed=3)
        ids = sorted(q.id for q in session.review_deck)
        answer(session)
        session.next()
        answer(session)

        assert session.reshuffle_review()

        assert session.position == 0
        assert sorted(q.id for q in session.review_deck) == ids
        assert session.selected_answer is None
        assert session.elapsed_seconds == 0
        assert session.timer_running


class TestFlagsAndNotes:
    """Test focus/analysis flags and note syncing."""

    def test_flag_toggles(self):
        bank, session = make_session(new=2)
        deck = list(session.new_deck)

        assert session.toggle_focus_new_only() is True
        assert session.toggle_analysis_mode() is True
        assert session.toggle_focus_new_only() is False
        assert session.new_deck == deck

    def test_note_draft_follows_current_question(self):
        questions = [
            make_question("a", practiced=True, user_note="note a"),
            make_question("b", practiced=True, user_note="note b"),
        ]
        bank = BankManager(MemoryStore(questions))
        session = SessionController(bank, rng=random.Random(0))

        assert session.note_draft == session.current.user_note
        answer(session)
        session.next()
        assert session.note_draft == session.current.user_note

    def test_save_note_keeps_session_state(self):
        bank, session = make_session(review=3)
        answer(session)
        session.next()
        answer(session)
        current_id = session.current.id

        session.toggle_analysis_mode()
        session.note_draft = "misread the graph"
        assert session.save_note()

        assert bank.get(current_id).user_note == "misread the graph"
        assert session.position == 1
        assert session.selected_answer is not None
        assert session.note_draft == "misread the graph"

    def test_rebuild_onto_same_question_drops_unsaved_draft(self):
        questions = [
            make_question("a", practiced=True, user_note="stored a"),
            make_question("b", practiced=True, user_note="stored b"),
        ]
        bank = BankManager(MemoryStore(questions))
        session = SessionController(bank, rng=random.Random(0))
        kept = session.current
        other = session.review_deck[1]
        session.note_draft = "unsaved"

        bank.delete(other.id)

        assert session.current.id == kept.id
        assert session.note_draft == kept.user_note

    def test_empty_note_draft_without_question(self):
        bank, session = make_session()
        assert session.note_draft == ""
        assert not session.save_note()
        assert not session.toggle_mark_current()


class TestTimer:
    """Test the cooperative timer."""

    def test_ticks_accumulate(self):
        bank, session = make_session(new=1)
        session.tick()
        session.tick(64)

        assert session.elapsed_seconds == 65
        assert session.format_elapsed() == "01:05"

    def test_non_positive_tick_ignored(self):
        bank, session = make_session(new=1)
        session.tick(0)
        session.tick(-3)
        assert session.elapsed_seconds == 0

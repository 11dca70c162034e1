from __future__ import annotations

import random

import pytest

from word_memory.errors import QuizProtocolError
from word_memory.quiz.session import (
    BLANK,
    CLOZE,
    MEANING,
    PLACEHOLDER_EXAMPLE,
    QUESTION_KINDS,
    QuizSession,
    VocabularyItem,
    blank_out,
    highlight,
    derive_status,
)


class FixedKindRandom(random.Random):
    def __init__(self, kind: str, seed: int = 7) -> None:
        super().__init__(seed)
        self.kind = kind

    def choice(self, seq):
        if tuple(seq) == QUESTION_KINDS:
            return self.kind
        return super().choice(seq)


def make_items(count: int) -> list[VocabularyItem]:
    words = ["apple", "bridge", "candle", "desert", "engine", "forest", "garden"]
    return [
        VocabularyItem(
            id=idx + 1,
            text=words[idx],
            meanings=[f"meaning of {words[idx]}", "secondary sense"],
            examples=[f"The {words[idx]} was there."],
        )
        for idx in range(count)
    ]


def expected_answer(question) -> str:
    return question.item.meanings[0] if question.kind == MEANING else question.item.text


def answer_correctly(session: QuizSession):
    question = session.next_question()
    return session.submit_answer(question.correct_index)


def answer_wrongly(session: QuizSession):
    question = session.next_question()
    return session.submit_answer((question.correct_index + 1) % len(question.options))


def test_correct_answer_sits_exactly_at_correct_index():
    for seed in range(40):
        session = QuizSession(make_items(5), rng=random.Random(seed))
        question = session.next_question()
        answer = expected_answer(question)

        assert question.options[question.correct_index] == answer
        assert question.options.count(answer) == 1
        assert question.kind in QUESTION_KINDS


def test_distractor_count_is_capped_by_available_peers():
    for count in range(1, 7):
        for seed in range(10):
            session = QuizSession(make_items(count), rng=random.Random(seed))
            question = session.next_question()
            assert len(question.options) == min(3, count - 1) + 1


def test_single_item_session_yields_single_option_question():
    session = QuizSession(make_items(1), rng=random.Random(1))
    question = session.next_question()

    assert question.options == [expected_answer(question)]
    assert question.correct_index == 0


def test_repeat_next_question_without_answer_returns_same_question():
    session = QuizSession(make_items(4), rng=random.Random(3))
    first = session.next_question()
    queue_before = [item.id for item in session.queue]

    second = session.next_question()

    assert second is first
    assert [item.id for item in session.queue] == queue_before
    assert session.questions_asked == 1


def test_cloze_question_blanks_target_word_case_insensitively():
    item = VocabularyItem(id=100, text="run", meanings=["move fast"], examples=["Run fast. I like to RUN every day."])
    session = QuizSession([item] + make_items(3), rng=FixedKindRandom(CLOZE))

    question = session.next_question()

    assert question.kind == CLOZE
    assert question.cloze_text == f"{BLANK} fast. I like to {BLANK} every day."
    assert question.options[question.correct_index] == "run"


def test_cloze_without_examples_uses_placeholder():
    item = VocabularyItem(id=1, text="lucid", meanings=["clear"], examples=[])
    session = QuizSession([item], rng=FixedKindRandom(CLOZE))

    question = session.next_question()

    assert question.cloze_text == PLACEHOLDER_EXAMPLE


def test_item_without_meanings_is_asked_as_cloze():
    item = VocabularyItem(id=100, text="lucid", meanings=[], examples=["A lucid explanation."])
    session = QuizSession([item] + make_items(3), rng=FixedKindRandom(MEANING))

    question = session.next_question()

    assert question.kind == CLOZE
    assert question.cloze_text == f"A {BLANK} explanation."


def test_meaning_distractors_skip_peers_without_meanings():
    items = make_items(1) + [VocabularyItem(id=99, text="bare", meanings=[], examples=[])]
    session = QuizSession(items, rng=FixedKindRandom(MEANING))

    question = session.next_question()

    assert question.kind == MEANING
    assert question.options == ["meaning of apple"]


def test_shared_meaning_is_not_offered_twice():
    items = [
        VocabularyItem(id=1, text="huge", meanings=["very big"], examples=["A huge dog."]),
        VocabularyItem(id=2, text="enormous", meanings=["very big"], examples=["An enormous dog."]),
        VocabularyItem(id=3, text="tiny", meanings=["very small"], examples=["A tiny dog."]),
    ]
    for seed in range(20):
        session = QuizSession(items, rng=FixedKindRandom(MEANING, seed=seed))
        question = session.next_question()

        assert question.options.count("very big") == 1
        assert question.options[question.correct_index] == "very big"
        assert len(question.options) == 2


def test_blank_out_escapes_regex_characters():
    assert blank_out("Is C++ hard? c++ is fun.", "C++") == f"Is {BLANK} hard? {BLANK} is fun."


def test_highlight_marks_each_occurrence_case_insensitively():
    assert highlight("Lucid prose is lucid.", "lucid") == [
        ("Lucid", True),
        (" prose is ", False),
        ("lucid", True),
        (".", False),
    ]
    assert highlight("No match here.", "zeal") == [("No match here.", False)]
    assert highlight("Is C++ hard?", "c++") == [("Is ", False), ("C++", True), (" hard?", False)]


def test_round_robin_all_correct_completes_after_twelve_answers():
    completions: list[bool] = []
    mastered: list = []
    session = QuizSession(
        make_items(4),
        rng=random.Random(11),
        on_complete=lambda: completions.append(True),
        on_mastered=lambda item: mastered.append(item.id),
    )

    asked: list = []
    while True:
        question = session.next_question()
        if question is None:
            break
        asked.append(question.item.id)
        session.submit_answer(question.correct_index)

    assert asked == [1, 2, 3, 4] * 3
    assert session.answers_submitted == 12
    assert not session.queue
    assert session.is_complete
    assert completions == [True]
    assert mastered == [1, 2, 3, 4]
    assert session.next_question() is None
    assert completions == [True]


def test_all_correct_session_terminates_after_three_answers_per_item():
    for count in (1, 2, 5, 7):
        session = QuizSession(make_items(count), rng=random.Random(count))
        total = 0
        while session.next_question() is not None:
            session.submit_answer(session.current_question.correct_index)
            total += 1
        assert total == 3 * count


def test_single_item_wrong_then_three_right_masters_it():
    peers = [
        VocabularyItem(id=10, text="alpha", meanings=["first"], examples=["alpha one"], streak=3, answered=True),
        VocabularyItem(id=11, text="omega", meanings=["last"], examples=["omega two"], streak=4, answered=True),
    ]
    target = VocabularyItem(id=1, text="zeal", meanings=["great energy"], examples=["She worked with zeal."])
    mastered: list = []
    session = QuizSession([target] + peers, rng=random.Random(5), on_mastered=lambda item: mastered.append(item.id))

    assert [item.id for item in session.queue] == [1]

    streaks: list[int] = []
    outcome = answer_wrongly(session)
    streaks.append(outcome.streak)
    assert outcome.review is True
    assert session.in_review
    session.acknowledge_review()

    for _ in range(3):
        outcome = answer_correctly(session)
        streaks.append(outcome.streak)

    assert streaks == [0, 1, 2, 3]
    assert session.answers_submitted == 4
    assert outcome.mastered is True
    assert outcome.complete is True
    assert mastered == [1]
    assert session.next_question() is None


def test_wrong_answer_keeps_item_in_front_until_acknowledged():
    session = QuizSession(make_items(3), rng=random.Random(2))
    outcome = answer_wrongly(session)

    assert outcome.correct is False
    assert outcome.item.id == 1
    assert session.queue[0].id == 1
    with pytest.raises(QuizProtocolError):
        session.next_question()

    session.acknowledge_review()

    assert [item.id for item in session.queue] == [2, 3, 1]
    assert session.next_question().item.id == 2


def test_wrong_answer_resets_seeded_streak():
    items = make_items(3)
    items[0].streak = 2
    items[0].answered = True
    session = QuizSession(items, rng=random.Random(8))

    outcome = answer_wrongly(session)
    session.acknowledge_review()

    assert outcome.streak == 0
    assert session.streaks[1] == 0
    assert session.status_of(1) == "studying"


def test_seeded_streak_counts_toward_mastery():
    items = make_items(2)
    items[0].streak = 2
    session = QuizSession(items, rng=random.Random(4))

    outcome = answer_correctly(session)

    assert outcome.mastered is True
    assert [item.id for item in session.queue] == [2]


def test_always_wrong_item_never_leaves_queue():
    session = QuizSession(make_items(2), rng=random.Random(9))

    for _ in range(60):
        question = session.next_question()
        assert question is not None
        if question.item.id == 1:
            session.submit_answer((question.correct_index + 1) % len(question.options))
            session.acknowledge_review()
        else:
            session.submit_answer(question.correct_index)

    assert not session.is_complete
    assert [item.id for item in session.queue] == [1]
    assert session.status_of(2) == "mastered"


def test_queue_never_holds_an_item_twice():
    session = QuizSession(make_items(4), rng=random.Random(13))
    for step in range(30):
        question = session.next_question()
        if question is None:
            break
        if step % 3 == 0:
            session.submit_answer((question.correct_index + 1) % len(question.options))
            session.acknowledge_review()
        else:
            session.submit_answer(question.correct_index)
        ids = [item.id for item in session.queue]
        assert len(ids) == len(set(ids))


def test_submit_without_outstanding_question_is_rejected():
    session = QuizSession(make_items(2), rng=random.Random(1))
    with pytest.raises(QuizProtocolError):
        session.submit_answer(0)


def test_double_submit_is_rejected():
    session = QuizSession(make_items(3), rng=random.Random(1))
    question = session.next_question()
    session.submit_answer(question.correct_index)

    assert session.awaiting_answer is False
    with pytest.raises(QuizProtocolError):
        session.submit_answer(question.correct_index)
    assert session.streaks[question.item.id] == 1


def test_out_of_range_index_is_rejected_without_mutation():
    session = QuizSession(make_items(3), rng=random.Random(1))
    question = session.next_question()

    with pytest.raises(QuizProtocolError):
        session.submit_answer(len(question.options))

    assert session.awaiting_answer is True
    assert session.streaks[question.item.id] == 0


def test_acknowledge_outside_review_is_rejected():
    session = QuizSession(make_items(2), rng=random.Random(1))
    with pytest.raises(QuizProtocolError):
        session.acknowledge_review()


def test_empty_session_completes_once():
    completions: list[bool] = []
    session = QuizSession([], on_complete=lambda: completions.append(True))

    assert session.next_question() is None
    assert session.next_question() is None
    assert completions == [True]


def test_mastered_items_stay_in_distractor_pool_only():
    items = make_items(3)
    items[2].streak = 3
    session = QuizSession(items, rng=FixedKindRandom(CLOZE))

    assert [item.id for item in session.queue] == [1, 2]
    question = session.next_question()
    assert "candle" in question.options


def test_finalize_returns_touched_records_and_closes_session():
    session = QuizSession(make_items(3), rng=random.Random(6))
    answer_correctly(session)
    answer_wrongly(session)

    records = session.finalize()

    assert [(r.item_id, r.streak, r.status, r.answered) for r in records] == [
        (1, 1, "studying", True),
        (2, 0, "studying", True),
    ]
    with pytest.raises(QuizProtocolError):
        session.next_question()
    with pytest.raises(QuizProtocolError):
        session.finalize()


def test_progress_reports_active_item():
    session = QuizSession(make_items(2), rng=random.Random(6))
    answer_correctly(session)

    progress = session.progress()

    assert progress["remaining"] == 2
    assert progress["current_word_id"] == 2
    assert progress["current_streak"] == 0
    assert progress["threshold"] == 3


def test_derive_status():
    assert derive_status(streak=0, answered=False) == "new"
    assert derive_status(streak=0, answered=True) == "studying"
    assert derive_status(streak=2, answered=True) == "studying"
    assert derive_status(streak=3, answered=True) == "mastered"


def test_vocabulary_item_from_row():
    item = VocabularyItem.from_row(
        {
            "id": 4,
            "text": "zeal",
            "meanings": ["great energy"],
            "examples": [],
            "consecutive_correct": 1,
            "last_reviewed_at": "2026-10-01T00:00:00+00:00",
        }
    )
    assert item.streak == 1
    assert item.answered is True
    assert item.status == "studying"

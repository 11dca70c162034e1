from __future__ import annotations

import logging
import random
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from word_memory.config import MASTERY_THRESHOLD
from word_memory.errors import QuizProtocolError

log = logging.getLogger(__name__)

MEANING = "meaning"
CLOZE = "cloze"
QUESTION_KINDS = (MEANING, CLOZE)
MAX_DISTRACTORS = 3
BLANK = "_____"
PLACEHOLDER_EXAMPLE = "No example provided."

STATUS_NEW = "new"
STATUS_STUDYING = "studying"
STATUS_MASTERED = "mastered"

IDLE = "IDLE"
AWAITING_ANSWER = "AWAITING_ANSWER"
REVIEW = "REVIEW"
COMPLETE = "COMPLETE"
FINALIZED = "FINALIZED"


@dataclass
class VocabularyItem:
    id: int | str
    text: str
    meanings: list[str] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)
    streak: int = 0
    answered: bool = False

    @property
    def status(self) -> str:
        return derive_status(streak=self.streak, answered=self.answered)

    @classmethod
    def from_row(cls, row: dict) -> VocabularyItem:
        streak = int(row.get("consecutive_correct") or 0)
        return cls(
            id=row["id"],
            text=str(row.get("text") or ""),
            meanings=[str(v) for v in row.get("meanings") or []],
            examples=[str(v) for v in row.get("examples") or []],
            streak=max(0, streak),
            answered=bool(row.get("last_reviewed_at")) or streak > 0,
        )


@dataclass
class Question:
    item: VocabularyItem
    kind: str
    options: list[str]
    correct_index: int
    cloze_text: str | None = None

    def to_payload(self) -> dict:
        # correct_index stays server-side until the answer is in
        payload = {
            "word_id": self.item.id,
            "kind": self.kind,
            "options": list(self.options),
        }
        if self.kind == MEANING:
            payload["prompt"] = self.item.text
        else:
            payload["prompt"] = self.cloze_text
        return payload


@dataclass
class Outcome:
    item: VocabularyItem
    correct: bool
    selected_index: int
    correct_index: int
    streak: int
    mastered: bool
    review: bool
    complete: bool

    def to_payload(self) -> dict:
        payload = {
            "word_id": self.item.id,
            "correct": self.correct,
            "selected_index": self.selected_index,
            "correct_index": self.correct_index,
            "streak": self.streak,
            "mastered": self.mastered,
            "review": self.review,
            "complete": self.complete,
        }
        if self.review:
            payload["detail"] = {
                "text": self.item.text,
                "meanings": list(self.item.meanings),
                "examples": list(self.item.examples),
            }
        return payload


@dataclass
class ProgressRecord:
    item_id: int | str
    streak: int
    status: str
    answered: bool


def derive_status(*, streak: int, answered: bool, threshold: int = MASTERY_THRESHOLD) -> str:
    if streak >= threshold:
        return STATUS_MASTERED
    if streak == 0 and not answered:
        return STATUS_NEW
    return STATUS_STUDYING


def blank_out(sentence: str, text: str) -> str:
    if not text:
        return sentence
    return re.sub(re.escape(text), BLANK, sentence, flags=re.IGNORECASE)


def highlight(sentence: str, text: str) -> list[tuple[str, bool]]:
    """Split a sentence into (fragment, is_target) pairs around each occurrence of text."""
    if not text:
        return [(sentence, False)]
    parts: list[tuple[str, bool]] = []
    pos = 0
    for match in re.finditer(re.escape(text), sentence, flags=re.IGNORECASE):
        if match.start() > pos:
            parts.append((sentence[pos:match.start()], False))
        parts.append((match.group(0), True))
        pos = match.end()
    if pos < len(sentence):
        parts.append((sentence[pos:], False))
    return parts


class QuizSession:
    """One study run over a snapshot of vocabulary items.

    The queue front is the active item. Correct answers rotate it to the back
    until its streak reaches the mastery threshold, at which point it leaves
    the queue for good. A wrong answer resets the streak and holds the item in
    review until the learner acknowledges it; only then does it rotate.
    """

    def __init__(
        self,
        items: list[VocabularyItem],
        *,
        rng: random.Random | None = None,
        threshold: int = MASTERY_THRESHOLD,
        on_mastered: Callable[[VocabularyItem], None] | None = None,
        on_complete: Callable[[], None] | None = None,
    ) -> None:
        self.rng = rng or random.Random()
        self.threshold = threshold
        self.on_mastered = on_mastered
        self.on_complete = on_complete

        self.items: list[VocabularyItem] = []
        seen: set = set()
        for item in items:
            if item.id in seen:
                continue
            seen.add(item.id)
            self.items.append(item)

        self.streaks: dict = {item.id: max(0, int(item.streak)) for item in self.items}
        self.answered: dict = {item.id: bool(item.answered) for item in self.items}
        self.queue: deque[VocabularyItem] = deque(
            item for item in self.items if self.streaks[item.id] < threshold
        )
        self.current_question: Question | None = None
        self.state = IDLE
        self.questions_asked = 0
        self.answers_submitted = 0
        self._touched: set = set()

    @property
    def awaiting_answer(self) -> bool:
        return self.state == AWAITING_ANSWER

    @property
    def in_review(self) -> bool:
        return self.state == REVIEW

    @property
    def is_complete(self) -> bool:
        return self.state == COMPLETE

    def next_question(self) -> Question | None:
        self._ensure_open()
        if self.state == AWAITING_ANSWER:
            return self.current_question
        if self.state == REVIEW:
            raise QuizProtocolError("acknowledge the reviewed word before the next question")
        if self.state == COMPLETE:
            return None
        if not self.queue:
            self._complete()
            return None

        question = self._build_question(self.queue[0])
        self.current_question = question
        self.state = AWAITING_ANSWER
        self.questions_asked += 1
        return question

    def submit_answer(self, selected_index: int) -> Outcome:
        self._ensure_open()
        if self.state != AWAITING_ANSWER or self.current_question is None:
            raise QuizProtocolError("no question is awaiting an answer")
        question = self.current_question
        if not 0 <= selected_index < len(question.options):
            raise QuizProtocolError(f"option index out of range: {selected_index}")

        item = question.item
        correct = selected_index == question.correct_index
        self.answers_submitted += 1
        self.answered[item.id] = True
        self._touched.add(item.id)
        self.current_question = None

        mastered = False
        if correct:
            streak = self.streaks[item.id] + 1
            self.streaks[item.id] = streak
            if streak >= self.threshold:
                mastered = True
                self.queue.popleft()
                log.info("word %s mastered after %d answers", item.id, self.answers_submitted)
                if self.on_mastered is not None:
                    self.on_mastered(item)
            else:
                self.queue.rotate(-1)
            self.state = IDLE
            if not self.queue:
                self._complete()
        else:
            streak = 0
            self.streaks[item.id] = 0
            self.state = REVIEW

        return Outcome(
            item=item,
            correct=correct,
            selected_index=selected_index,
            correct_index=question.correct_index,
            streak=streak,
            mastered=mastered,
            review=not correct,
            complete=self.state == COMPLETE,
        )

    def acknowledge_review(self) -> None:
        self._ensure_open()
        if self.state != REVIEW:
            raise QuizProtocolError("no reviewed word to acknowledge")
        self.queue.rotate(-1)
        self.state = IDLE

    def status_of(self, item_id) -> str:
        return derive_status(
            streak=self.streaks[item_id],
            answered=self.answered[item_id],
            threshold=self.threshold,
        )

    def progress(self) -> dict:
        active = self.queue[0] if self.queue else None
        return {
            "remaining": len(self.queue),
            "total": len(self.items),
            "questions_asked": self.questions_asked,
            "answers_submitted": self.answers_submitted,
            "current_word_id": active.id if active else None,
            "current_streak": self.streaks[active.id] if active else None,
            "threshold": self.threshold,
            "state": self.state,
        }

    def progress_records(self) -> list[ProgressRecord]:
        return [
            ProgressRecord(
                item_id=item.id,
                streak=self.streaks[item.id],
                status=self.status_of(item.id),
                answered=self.answered[item.id],
            )
            for item in self.items
            if item.id in self._touched
        ]

    def finalize(self) -> list[ProgressRecord]:
        self._ensure_open()
        records = self.progress_records()
        self.state = FINALIZED
        self.current_question = None
        return records

    def _ensure_open(self) -> None:
        if self.state == FINALIZED:
            raise QuizProtocolError("quiz session is already finalized")

    def _complete(self) -> None:
        if self.state == COMPLETE:
            return
        self.state = COMPLETE
        log.info("quiz session complete after %d questions", self.questions_asked)
        if self.on_complete is not None:
            self.on_complete()

    def _build_question(self, item: VocabularyItem) -> Question:
        kind = self.rng.choice(QUESTION_KINDS)
        if not item.meanings:
            kind = CLOZE

        peers = [other for other in self.items if other.id != item.id]
        if kind == MEANING:
            correct = item.meanings[0]
            pool = [other.meanings[0] for other in peers if other.meanings]
            cloze_text = None
        else:
            correct = item.text
            pool = [other.text for other in peers]
            sentence = item.examples[0] if item.examples else PLACEHOLDER_EXAMPLE
            cloze_text = blank_out(sentence, item.text)

        pool = [value for value in pool if value != correct]
        distractors = self.rng.sample(pool, min(MAX_DISTRACTORS, len(pool)))

        pairs = [(value, False) for value in distractors] + [(correct, True)]
        self.rng.shuffle(pairs)
        correct_index = next(idx for idx, (_, is_correct) in enumerate(pairs) if is_correct)

        return Question(
            item=item,
            kind=kind,
            options=[value for value, _ in pairs],
            correct_index=correct_index,
            cloze_text=cloze_text,
        )

from __future__ import annotations

from pydantic import BaseModel, Field

from word_memory.config import GUEST_USER_ID


class WordInput(BaseModel):
    text: str
    meanings: list[str] = Field(default_factory=list)
    examples: list[str] = Field(default_factory=list)


class AddWordsRequest(BaseModel):
    user_id: int = Field(default=GUEST_USER_ID)
    words: list[WordInput] = Field(default_factory=list)


class QuizStartRequest(BaseModel):
    user_id: int = Field(default=GUEST_USER_ID)
    word_ids: list[int] = Field(default_factory=list)
    seed: int | None = None


class AnswerRequest(BaseModel):
    selected_index: int = Field(ge=0)


class QuizFinishRequest(BaseModel):
    persist: bool = True


class TTSRequest(BaseModel):
    text: str
    voice: str | None = None

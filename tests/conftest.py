from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import word_memory.app as app_module
from word_memory.quiz.registry import SessionRegistry
from word_memory.services.extractor import ExtractedWord
from word_memory.storage.db import Database


class FakeExtractor:
    def __init__(self) -> None:
        self.words = [
            ExtractedWord(text="ephemeral", meanings=["lasting a very short time"], examples=["Fame is ephemeral."]),
            ExtractedWord(text="candid", meanings=["truthful and straightforward"], examples=["She gave a candid answer."]),
        ]
        self.error: Exception | None = None
        self.calls: list[tuple[bytes, str]] = []

    def extract(self, payload: bytes, media_type: str) -> list[ExtractedWord]:
        self.calls.append((payload, media_type))
        if self.error is not None:
            raise self.error
        return list(self.words)


@pytest.fixture()
def temp_db(tmp_path):
    db = Database(tmp_path / "word_memory_test.db")
    db.initialize()
    return db


@pytest.fixture()
def fake_extractor():
    return FakeExtractor()


@pytest.fixture()
def client(temp_db, fake_extractor, monkeypatch):
    monkeypatch.setattr(app_module, "db", temp_db)
    monkeypatch.setattr(app_module, "extractor", fake_extractor)
    monkeypatch.setattr(app_module, "sessions", SessionRegistry())
    monkeypatch.setattr(app_module, "setup_logging", lambda: None)
    with TestClient(app_module.app) as c:
        yield c

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from word_memory.config import DB_PATH, GUEST_USER_ID, MASTERY_THRESHOLD
from word_memory.quiz.session import ProgressRecord, derive_status

UTC = timezone.utc
ALLOWED_STATUSES = ("new", "studying", "mastered")

log = logging.getLogger(__name__)


class Database:
    def __init__(self, db_path: Path = DB_PATH) -> None:
        self.db_path = db_path

    @contextmanager
    def connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        schema_path = Path(__file__).with_name("schema.sql")
        with self.connect() as conn:
            conn.executescript(schema_path.read_text(encoding="utf-8"))
        self.ensure_default_users()

    def ensure_default_users(self) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (id, username, created_at) VALUES (?, 'guest', ?)",
                (GUEST_USER_ID, _iso_now()),
            )

    def get_user(self, user_id: int) -> dict | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return dict(row) if row else None

    def add_words(self, user_id: int, records: Sequence[dict]) -> list[dict]:
        if self.get_user(user_id) is None:
            raise ValueError(f"user {user_id} not found")

        inserted_ids: list[int] = []
        with self.connect() as conn:
            for record in records:
                text = " ".join(str(record.get("text") or "").split())
                if not text:
                    continue
                cursor = conn.execute(
                    """
                    INSERT INTO words (user_id, text, meanings, examples, status, consecutive_correct, created_at)
                    VALUES (?, ?, ?, ?, 'new', 0, ?)
                    """,
                    (
                        user_id,
                        text,
                        _json_dumps(_sanitize_str_list(record.get("meanings"))),
                        _json_dumps(_sanitize_str_list(record.get("examples"))),
                        _iso_now(),
                    ),
                )
                inserted_ids.append(int(cursor.lastrowid))
        log.info("stored %d words for user %s", len(inserted_ids), user_id)
        return self.find_words_by_ids(user_id, inserted_ids)

    def get_word(self, word_id: int) -> dict | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM words WHERE id = ?", (word_id,)).fetchone()
        return _decode_word(row) if row else None

    def list_words(self, user_id: int, *, status: str | None = None) -> list[dict]:
        clauses = ["user_id = ?"]
        params: list[object] = [user_id]
        if status:
            normalized = str(status).strip().lower()
            if normalized not in ALLOWED_STATUSES:
                raise ValueError(f"invalid status: {status}")
            clauses.append("status = ?")
            params.append(normalized)

        query = f"SELECT * FROM words WHERE {' AND '.join(clauses)} ORDER BY id ASC"
        with self.connect() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [_decode_word(row) for row in rows]

    def find_words_by_ids(self, user_id: int, word_ids: Sequence[int]) -> list[dict]:
        if not word_ids:
            return []
        placeholders = ",".join(["?"] * len(word_ids))
        with self.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM words WHERE user_id = ? AND id IN ({placeholders}) ORDER BY id ASC",
                (user_id, *word_ids),
            ).fetchall()
        return [_decode_word(row) for row in rows]

    def word_stats(self, user_id: int) -> dict:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS cnt FROM words WHERE user_id = ? GROUP BY status",
                (user_id,),
            ).fetchall()
        counts = {status: 0 for status in ALLOWED_STATUSES}
        for row in rows:
            counts[str(row["status"])] = int(row["cnt"])
        return {"total": sum(counts.values()), **counts}

    def apply_quiz_progress(
        self,
        user_id: int,
        records: Sequence[ProgressRecord],
        *,
        now: datetime | None = None,
    ) -> int:
        reviewed_at = (now or datetime.now(UTC)).isoformat()
        updated = 0
        with self.connect() as conn:
            for record in records:
                if not record.answered:
                    continue
                streak = max(0, int(record.streak))
                status = derive_status(streak=streak, answered=True, threshold=MASTERY_THRESHOLD)
                cursor = conn.execute(
                    """
                    UPDATE words
                    SET consecutive_correct = ?, status = ?, last_reviewed_at = ?
                    WHERE id = ? AND user_id = ?
                    """,
                    (streak, status, reviewed_at, record.item_id, user_id),
                )
                updated += cursor.rowcount
        log.info("persisted quiz progress for %d words (user %s)", updated, user_id)
        return updated


def _json_dumps(value: object) -> str:
    return json.dumps(value, ensure_ascii=False)


def _json_loads(value: str | None) -> list:
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def _sanitize_str_list(values: Sequence[str] | None, *, limit: int = 8) -> list[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    cleaned: list[str] = []
    for value in values:
        text = " ".join(str(value).split()).strip()
        if not text:
            continue
        cleaned.append(text)
        if len(cleaned) >= limit:
            break
    return cleaned


def _decode_word(row: sqlite3.Row) -> dict:
    obj = dict(row)
    obj["meanings"] = _json_loads(obj.get("meanings"))
    obj["examples"] = _json_loads(obj.get("examples"))
    return obj


def _iso_now() -> str:
    return datetime.now(UTC).isoformat()

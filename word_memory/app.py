from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from word_memory.api.schemas import (
    AddWordsRequest,
    AnswerRequest,
    QuizFinishRequest,
    QuizStartRequest,
    TTSRequest,
)
from word_memory.config import (
    ARTIFACTS_DIR,
    GUEST_USER_ID,
    MASTERY_THRESHOLD,
    TEMPLATES_DIR,
    ensure_dirs,
    setup_logging,
)
from word_memory.errors import WordMemoryError
from word_memory.quiz.registry import SessionEntry, SessionRegistry
from word_memory.quiz.session import QuizSession, VocabularyItem, highlight
from word_memory.services.extractor import VocabularyExtractor
from word_memory.services.speech import SpeechService
from word_memory.storage.db import Database

log = logging.getLogger(__name__)

db = Database()
extractor = VocabularyExtractor()
speech_service = SpeechService()
sessions = SessionRegistry()
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.globals["highlight"] = highlight


@asynccontextmanager
async def lifespan(_app: FastAPI):
    setup_logging()
    ensure_dirs()
    db.initialize()
    yield


app = FastAPI(title="Word Memory", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/artifacts", StaticFiles(directory=str(ARTIFACTS_DIR), check_dir=False), name="artifacts")


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def home(request: Request, user_id: int = Query(default=GUEST_USER_ID)) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "stats": db.word_stats(user_id),
            "words": db.list_words(user_id),
            "user_id": user_id,
        },
    )


@app.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    svg = (
        "<svg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 64 64'>"
        "<rect width='64' height='64' rx='14' fill='#5b3fd6'/>"
        "<text x='32' y='42' text-anchor='middle' font-size='34' fill='white' font-family='Arial'>M</text>"
        "</svg>"
    )
    return Response(content=svg, media_type="image/svg+xml")


@app.post("/api/process-input")
async def process_input(
    user_id: int = Form(default=GUEST_USER_ID),
    file: UploadFile | None = File(default=None),
) -> dict:
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")
    payload = await file.read()
    try:
        extracted = extractor.extract(payload, file.content_type or "")
    except WordMemoryError as exc:
        log.warning("extraction failed for %s: %s", file.filename, exc)
        raise _http_error(exc) from exc

    try:
        stored = db.add_words(user_id, [word.to_dict() for word in extracted])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "words": stored}


@app.get("/api/words")
def words(
    user_id: int = Query(default=GUEST_USER_ID),
    status: str | None = Query(default=None),
) -> dict:
    try:
        items = db.list_words(user_id, status=status)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "items": items, "total": len(items)}


@app.post("/api/words")
def add_words(req: AddWordsRequest) -> dict:
    try:
        stored = db.add_words(req.user_id, [word.model_dump() for word in req.words])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "words": stored}


@app.get("/api/stats")
def stats(user_id: int = Query(default=GUEST_USER_ID)) -> dict:
    return {"ok": True, "stats": db.word_stats(user_id), "threshold": MASTERY_THRESHOLD}


@app.post("/api/quiz/sessions")
def start_quiz(req: QuizStartRequest) -> dict:
    if req.word_ids:
        rows = db.find_words_by_ids(req.user_id, req.word_ids)
    else:
        rows = db.list_words(req.user_id)
    if not rows:
        raise HTTPException(status_code=400, detail="No words to study! Add some first.")

    rng = random.Random(req.seed) if req.seed is not None else random.Random()
    session = QuizSession([VocabularyItem.from_row(row) for row in rows], rng=rng)
    entry = sessions.open(user_id=req.user_id, session=session)
    session.on_mastered = lambda item: entry.mastered_word_ids.append(item.id)
    log.info("quiz session %s started with %d words", entry.session_id, len(rows))
    return {"ok": True, "session_id": entry.session_id, **_question_response(entry)}


@app.get("/api/quiz/sessions/{session_id}/question")
def quiz_question(session_id: str) -> dict:
    entry = _get_entry(session_id)
    return {"ok": True, "session_id": session_id, **_question_response(entry)}


@app.post("/api/quiz/sessions/{session_id}/answer")
def quiz_answer(session_id: str, req: AnswerRequest) -> dict:
    entry = _get_entry(session_id)
    try:
        outcome = entry.session.submit_answer(req.selected_index)
    except WordMemoryError as exc:
        raise _http_error(exc) from exc
    return {
        "ok": True,
        "session_id": session_id,
        "outcome": outcome.to_payload(),
        "progress": entry.session.progress(),
    }


@app.post("/api/quiz/sessions/{session_id}/acknowledge")
def quiz_acknowledge(session_id: str) -> dict:
    entry = _get_entry(session_id)
    try:
        entry.session.acknowledge_review()
    except WordMemoryError as exc:
        raise _http_error(exc) from exc
    return {"ok": True, "session_id": session_id, **_question_response(entry)}


@app.post("/api/quiz/sessions/{session_id}/finish")
def quiz_finish(session_id: str, req: QuizFinishRequest | None = None) -> dict:
    entry = sessions.close(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="quiz session not found")
    persist = req.persist if req is not None else True
    records = entry.session.finalize()
    updated = db.apply_quiz_progress(entry.user_id, records) if persist else 0
    log.info("quiz session %s finished, %d words persisted", session_id, updated)
    return {
        "ok": True,
        "session_id": session_id,
        "complete": not entry.session.queue,
        "mastered_word_ids": list(entry.mastered_word_ids),
        "persisted": updated,
        "records": [
            {"word_id": r.item_id, "streak": r.streak, "status": r.status}
            for r in records
        ],
    }


@app.post("/api/speech/tts")
async def speech_tts(req: TTSRequest) -> dict:
    try:
        out = await speech_service.pronounce(req.text, voice=req.voice)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (RuntimeError, httpx.HTTPError) as exc:
        raise HTTPException(status_code=503, detail=f"TTS unavailable: {exc}") from exc

    return {
        "ok": True,
        "audio_url": "/artifacts/" + str(out.relative_to(ARTIFACTS_DIR)).replace("\\", "/"),
    }


def _get_entry(session_id: str) -> SessionEntry:
    entry = sessions.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="quiz session not found")
    return entry


def _question_response(entry: SessionEntry) -> dict:
    try:
        question = entry.session.next_question()
    except WordMemoryError as exc:
        raise _http_error(exc) from exc
    return {
        "complete": question is None,
        "question": question.to_payload() if question else None,
        "progress": entry.session.progress(),
    }


def _http_error(exc: WordMemoryError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)

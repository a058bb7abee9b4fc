"""
api/routes.py — FastAPI 엔드포인트
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel

import config
from api.session import AttemptRegistry, SessionRegistry

from mock_exam_cbt.models.attempt_record import AttemptRecord, UserIdentity
from mock_exam_cbt.models.question_model import ExamDefinition
from mock_exam_cbt.models.session_state import SessionState
from mock_exam_cbt.services.attempt_session import AttemptSession
from mock_exam_cbt.services.attempt_store import AttemptStore
from mock_exam_cbt.services.catalog import ExamCatalog
from mock_exam_cbt.services.content_import import add_questions, import_questions, parse_definition
from mock_exam_cbt.services.errors import (
    DefinitionNotFound,
    MalformedDefinition,
    SessionNotActive,
    SubmissionFailed,
)
from mock_exam_cbt.services.review_service import build_review, format_duration, history, leaderboard

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class LoginBody(BaseModel):
    user_id: str
    display_name: str = ""

class AnswerBody(BaseModel):
    option_index: Optional[int] = None

class MarkBody(BaseModel):
    advance: bool = True

class NavigateBody(BaseModel):
    direction: Optional[str] = None     # "next" | "previous"
    section_index: int = 0
    question_index: int = 0

class ImportQuestionsBody(BaseModel):
    questions: list[dict]
    section_index: Optional[int] = None


# ── 의존성 ───────────────────────────────────────────────────────────────────

def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions

def get_attempts(request: Request) -> AttemptRegistry:
    return request.app.state.attempts

def get_catalog(request: Request) -> ExamCatalog:
    return request.app.state.catalog

def get_store(request: Request) -> AttemptStore:
    return request.app.state.attempt_store

def current_user(request: Request, sessions: SessionRegistry = Depends(get_sessions)) -> UserIdentity:
    user = sessions.get(request.state.session_id, "user")
    if user is None:
        raise HTTPException(status_code=401, detail="로그인이 필요합니다.")
    return user


def _running_attempt(
    test_id: str,
    user: UserIdentity = Depends(current_user),
    attempts: AttemptRegistry = Depends(get_attempts),
) -> AttemptSession:
    attempt = attempts.get(user.user_id, test_id)
    if attempt is None:
        raise HTTPException(status_code=404, detail="진행 중인 시험이 없습니다.")
    return attempt


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _exam_summary(d: ExamDefinition) -> dict:
    return {
        "id": d.id,
        "title": d.title,
        "description": d.description,
        "difficulty": d.difficulty,
        "has_sections": d.has_sections,
        "sections": [{"name": s.name, "question_count": len(s.questions)} for s in d.sections],
        "total_questions": d.total_questions,
        "duration_seconds": d.planned_duration_seconds,
        "negative_mark_per_wrong": d.negative_mark_per_wrong,
        "shuffle": d.shuffle,
    }


def _attempt_state(attempt: AttemptSession) -> dict:
    palette = [
        {
            "section_index": pos.section_index,
            "question_index": pos.question_index,
            "number": pos.question_index + 1,
            "status": int(status),
            "status_name": status.name.lower(),
        }
        for pos, status in attempt.palette()
    ]
    return {
        "test_id": attempt.test_id,
        "state": attempt.state.value,
        "resumed": attempt.resumed,
        "started_at": attempt.started_at,
        "seconds_remaining": attempt.seconds_remaining,
        "time_left": format_duration(attempt.seconds_remaining),
        "time_up": attempt.time_up,
        "current": attempt.current.model_dump(),
        "palette": palette,
        "answered_count": attempt.answered_count,
        "total": attempt.definition.total_questions if attempt.definition else 0,
        "notice": attempt.notice,
        "last_error": attempt.last_error,
        "record_id": attempt.record_id,
        "auto_submitted": attempt.auto_submitted,
    }


def _record_row(r: AttemptRecord, user_id: Optional[str] = None) -> dict:
    row = {
        "id": r.id,
        "test_id": r.test_id,
        "test_title": r.test_title,
        "username": r.username or "Anonymous",
        "total_score": r.total_score,
        "total_marks": r.total_marks,
        "time_taken": format_duration(r.time_taken_seconds),
        "submitted_at": r.submitted_at.isoformat() if r.submitted_at else None,
        "auto_submitted": r.auto_submitted,
    }
    if user_id is not None:
        row["is_you"] = r.user_id == user_id
    return row


# ── 로그인 / 시험 목록 ───────────────────────────────────────────────────────

@router.post("/api/login")
async def login(body: LoginBody, request: Request, sessions: SessionRegistry = Depends(get_sessions)):
    user_id = body.user_id.strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="사용자 ID가 비어 있습니다.")
    user = UserIdentity(user_id=user_id, display_name=body.display_name.strip())
    sessions.put(request.state.session_id, "user", user)
    return {"ok": True, "user_id": user.user_id}


@router.get("/api/tests")
async def list_tests(catalog: ExamCatalog = Depends(get_catalog)):
    return {"tests": [_exam_summary(d) for d in catalog.list()]}


@router.post("/api/tests")
async def create_test(
    payload: dict = Body(...),
    catalog: ExamCatalog = Depends(get_catalog),
    store: AttemptStore = Depends(get_store),
):
    try:
        definition = parse_definition(payload)
    except MalformedDefinition as e:
        raise HTTPException(status_code=422, detail=str(e))
    if store.for_test(definition.id):
        raise HTTPException(status_code=409, detail="이미 응시 기록이 있는 시험은 수정할 수 없습니다.")
    await asyncio.to_thread(catalog.add, definition)
    return {"ok": True, "id": definition.id, "total_questions": definition.total_questions}


@router.post("/api/tests/{test_id}/questions")
async def import_test_questions(
    test_id: str,
    body: ImportQuestionsBody,
    catalog: ExamCatalog = Depends(get_catalog),
    store: AttemptStore = Depends(get_store),
):
    try:
        definition = catalog.get(test_id)
    except DefinitionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    if store.for_test(test_id):
        raise HTTPException(status_code=409, detail="이미 응시 기록이 있는 시험은 수정할 수 없습니다.")
    try:
        questions = import_questions(body.questions)
        updated = add_questions(definition, questions, body.section_index)
    except MalformedDefinition as e:
        raise HTTPException(status_code=422, detail=str(e))
    await asyncio.to_thread(catalog.add, updated)
    return {"ok": True, "imported": len(questions), "total_questions": updated.total_questions}


# ── 응시 ─────────────────────────────────────────────────────────────────────

@router.post("/api/attempts/{test_id}/open")
async def open_attempt(
    test_id: str,
    user: UserIdentity = Depends(current_user),
    attempts: AttemptRegistry = Depends(get_attempts),
):
    try:
        attempt = await asyncio.to_thread(attempts.open, user, test_id)
    except DefinitionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _attempt_state(attempt)


@router.get("/api/attempts/{test_id}/state")
async def get_attempt_state(attempt: AttemptSession = Depends(_running_attempt)):
    return _attempt_state(attempt)


@router.get("/api/attempts/{test_id}/question")
async def get_current_question(attempt: AttemptSession = Depends(_running_attempt)):
    question = attempt.current_question()
    if question is None:
        raise HTTPException(status_code=404, detail="문제를 찾을 수 없습니다.")
    current = attempt.current
    definition = attempt.definition
    return {
        "section_index": current.section_index,
        "question_index": current.question_index,
        "section": definition.sections[current.section_index].name if definition.has_sections else None,
        "number": current.question_index + 1,
        "total_in_section": len(attempt.order[current.section_index]),
        "text": question.text,
        "options": question.options,
        "marks": question.marks,
        "saved_answer": attempt.current_answer(),
        "status": int(attempt.status_at(current)),
    }


@router.post("/api/attempts/{test_id}/answer")
async def save_answer(body: AnswerBody, attempt: AttemptSession = Depends(_running_attempt)):
    try:
        attempt.select_option(body.option_index)
    except SessionNotActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _attempt_state(attempt)


@router.post("/api/attempts/{test_id}/mark")
async def mark_for_review(body: MarkBody, attempt: AttemptSession = Depends(_running_attempt)):
    try:
        attempt.mark_for_review(advance=body.advance)
    except SessionNotActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _attempt_state(attempt)


@router.post("/api/attempts/{test_id}/navigate")
async def navigate(body: NavigateBody, attempt: AttemptSession = Depends(_running_attempt)):
    try:
        if body.direction == "next":
            attempt.next_question()
        elif body.direction == "previous":
            attempt.previous_question()
        elif body.direction is None:
            attempt.go_to(body.section_index, body.question_index)
        else:
            raise HTTPException(status_code=400, detail=f"알 수 없는 이동 방향: {body.direction}")
    except SessionNotActive as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _attempt_state(attempt)


@router.post("/api/attempts/{test_id}/submit")
async def submit_attempt(attempt: AttemptSession = Depends(_running_attempt)):
    try:
        record_id = await asyncio.to_thread(attempt.submit, False)
    except SubmissionFailed as e:
        raise HTTPException(status_code=503, detail=str(e))

    if record_id is None:
        if attempt.state == SessionState.SUBMITTED:
            return {"ok": True, "record_id": attempt.record_id, "auto_submitted": attempt.auto_submitted}
        raise HTTPException(status_code=409, detail="이미 제출 중이거나 제출할 수 없는 상태입니다.")
    return {"ok": True, "record_id": record_id, "auto_submitted": False}


# ── 결과 / 리더보드 / 이력 ───────────────────────────────────────────────────

@router.get("/api/results/{record_id}")
async def get_results(
    record_id: str,
    catalog: ExamCatalog = Depends(get_catalog),
    store: AttemptStore = Depends(get_store),
):
    record = store.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="결과 정보가 없습니다.")
    try:
        definition = catalog.get(record.test_id)
    except DefinitionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return build_review(record, definition)


@router.get("/api/tests/{test_id}/leaderboard")
async def get_leaderboard(
    test_id: str,
    request: Request,
    limit: int = config.LEADERBOARD_LIMIT,
    sessions: SessionRegistry = Depends(get_sessions),
    store: AttemptStore = Depends(get_store),
):
    user: Optional[UserIdentity] = sessions.get(request.state.session_id, "user")
    viewer = user.user_id if user else ""
    rows = leaderboard(store, test_id, limit=max(1, limit))
    return {"test_id": test_id, "rows": [_record_row(r, viewer) for r in rows]}


@router.get("/api/history")
async def get_history(user: UserIdentity = Depends(current_user), store: AttemptStore = Depends(get_store)):
    return {"attempts": [_record_row(r) for r in history(store, user.user_id)]}

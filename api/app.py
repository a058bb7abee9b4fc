"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + 저장소 주입
"""

import logging
import os
import threading
import time
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import (
    ATTEMPTS_DIR,
    CATALOG_DIR,
    PERSIST_INTERVAL_SECONDS,
    SESSION_CLEANUP_INTERVAL,
    SNAPSHOT_DIR,
)
from api.routes import router
from api.sample_tests import SAMPLE_TESTS
from api.session import AttemptRegistry, SessionRegistry

from mock_exam_cbt.models.attempt_record import UserIdentity
from mock_exam_cbt.services.attempt_session import AttemptSession
from mock_exam_cbt.services.attempt_store import AttemptStore
from mock_exam_cbt.services.catalog import ExamCatalog
from mock_exam_cbt.services.snapshot_store import FileSnapshotStore, SnapshotStore, safe_name

SESSION_COOKIE = "cbt_session"

logger = logging.getLogger(__name__)


def _user_snapshot_store(user_id: str) -> SnapshotStore:
    return FileSnapshotStore(os.path.join(SNAPSHOT_DIR, safe_name(user_id)))


def create_app(
    catalog: Optional[ExamCatalog] = None,
    attempt_store: Optional[AttemptStore] = None,
    snapshot_store_for: Callable[[str], SnapshotStore] = _user_snapshot_store,
    now_millis: Optional[Callable[[], int]] = None,
    start_timers: bool = True,
    background_cleanup: bool = True,
) -> FastAPI:
    app = FastAPI(title="Mock Test CBT")

    if catalog is None:
        catalog = ExamCatalog(CATALOG_DIR)
    if not catalog.list():
        for definition in SAMPLE_TESTS:
            catalog.add(definition)
        logger.info(f"카탈로그가 비어 있어 샘플 시험 {len(SAMPLE_TESTS)}건 추가")
    if attempt_store is None:
        attempt_store = AttemptStore(ATTEMPTS_DIR)

    def _attempt_factory(test_id: str, user: UserIdentity) -> AttemptSession:
        kwargs = {"now_millis": now_millis} if now_millis else {}
        return AttemptSession(
            test_id,
            user,
            catalog=catalog,
            attempt_store=attempt_store,
            snapshot_store=snapshot_store_for(user.user_id),
            persist_interval=PERSIST_INTERVAL_SECONDS,
            **kwargs,
        )

    app.state.catalog = catalog
    app.state.attempt_store = attempt_store
    app.state.sessions = SessionRegistry()
    app.state.attempts = AttemptRegistry(_attempt_factory, start_timers=start_timers)

    # CORS (모바일 브라우저 등 다양한 출처 허용)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 세션 미들웨어: 쿠키에서 세션 ID를 읽고, 없으면 새로 발급
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sessions: SessionRegistry = request.app.state.sessions
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or sessions.get_session(sid) is None:
            sid = sessions.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=sessions.ttl,
        )
        return response

    app.include_router(router)

    @app.get("/")
    async def service_info():
        return {"service": "mock-exam-cbt", "tests": len(catalog.list()), "docs": "/docs"}

    # 만료 세션 주기적 정리 (5분마다)
    def _cleanup_loop():
        while True:
            time.sleep(SESSION_CLEANUP_INTERVAL)
            removed = app.state.sessions.cleanup_expired()
            finished = app.state.attempts.cleanup_finished()
            if removed or finished:
                logger.info(f"만료 세션 {removed}개, 종료된 응시 {finished}개 정리")

    if background_cleanup:
        t = threading.Thread(target=_cleanup_loop, daemon=True)
        t.start()

    return app

from typing import List, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException, Body, Depends, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from sqlalchemy.exc import IntegrityError

from contest_session import ContestSession, ContestSummary, SessionRegistry, SessionState
from database import get_session_manager
from errors import PersistenceError, SessionClosedError, SessionStateError, ValidationError
from evaluation import TestEvaluator
from judge_client import JudgeClient
from logger_config import logger
from model import Base
from payload import (
    CodeChangeIn,
    CodeIn,
    ContestIn,
    ContestSummaryOut,
    ExamplePayload,
    FullscreenIn,
    IntegrityOut,
    OptionOut,
    ProgressOut,
    QuestionOut,
    QuestionScoreOut,
    RunOut,
    SessionStartIn,
    SessionStartOut,
    SessionStatusOut,
    StarterCodeOut,
    SubmissionOut,
    SubmitIn,
    TestCasePayload,
    TestResultOut,
)
from persistence import ResultStore
from questions import Question
from repository import QuestionRepository
from results import Submission, TestResult
from scoring import question_max_score, score_question
from utils import (
    create_session_token,
    decode_session_token,
    format_remaining,
    validate_contest_code,
    validate_participant_key,
)


SESSION_HEADER_NAME = "x-session-token"
session_token_header = APIKeyHeader(name=SESSION_HEADER_NAME, auto_error=False)

registry = SessionRegistry()
judge_client = JudgeClient()


def get_registry() -> SessionRegistry:
    return registry


def get_repository() -> QuestionRepository:
    return QuestionRepository(get_session_manager())


def get_store() -> ResultStore:
    return ResultStore(get_session_manager())


def get_evaluator() -> TestEvaluator:
    return TestEvaluator(judge_client)


async def get_current_session(
    token: Optional[str] = Security(session_token_header),
    sessions: SessionRegistry = Depends(get_registry),
) -> ContestSession:
    if not token:
        raise HTTPException(status_code=401, detail="Session token is missing")
    session_id = decode_session_token(token)
    if session_id is None:
        raise HTTPException(status_code=401, detail="Invalid session token")
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@asynccontextmanager
async def lifespan(app: FastAPI):
    await get_session_manager().create_tables(Base)
    yield
    await registry.close_all()
    await judge_client.close()


logger.info("API Server starting...")
app = FastAPI(title="Contest Arena", lifespan=lifespan)
logger.info("API Server started")


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(SessionClosedError)
@app.exception_handler(SessionStateError)
async def session_state_error_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def result_out(result: TestResult) -> TestResultOut:
    return TestResultOut(
        index=result.index,
        status=result.outcome.value,
        points=result.points,
        max_points=result.max_points,
        visible=result.visible,
        message=result.message,
        input=result.input,
        expected=result.expected,
        output=result.output,
        details=result.details,
    )


def submission_out(submission: Submission, question: Question) -> SubmissionOut:
    return SubmissionOut(
        submission_id=submission.id,
        question_id=submission.question_id,
        score=score_question(submission.results),
        max_score=question_max_score(question),
        submitted_at=submission.submitted_at,
        results=[result_out(r) for r in submission.results],
    )


def question_out(question: Question) -> QuestionOut:
    return QuestionOut(
        id=question.id,
        title=question.title,
        description=question.description,
        type=question.type,
        examples=[ExamplePayload(input=e.input, output=e.output, explanation=e.explanation) for e in question.examples],
        constraints=list(question.constraints),
        visible_test_cases=[
            TestCasePayload(input=tc.input, expected_output=tc.expected_output, points=tc.points, visible=True)
            for tc in question.visible_test_cases
        ],
        options=[OptionOut(id=o.id, text=o.text) for o in question.options],
        max_score=question_max_score(question),
    )


def summary_out(summary: ContestSummary) -> ContestSummaryOut:
    return ContestSummaryOut(
        session_id=summary.session_id,
        contest_id=summary.contest_id,
        participant_key=summary.participant_key,
        state=summary.state.value,
        reason=summary.reason.value,
        total_score=summary.total_score,
        max_score=summary.max_score,
        cheating_detected=summary.cheating_detected,
        persisted=summary.persisted,
        result_id=summary.result_id,
        warning=summary.warning,
        questions=[
            QuestionScoreOut(
                question_id=q.question_id,
                title=q.title,
                submitted=q.submitted,
                score=q.score,
                max_score=q.max_score,
            )
            for q in summary.questions
        ],
    )


def get_question_or_404(session: ContestSession, question_id: int) -> Question:
    question = session.questions.get(question_id)
    if question is None:
        raise HTTPException(status_code=404, detail="Question not found")
    return question


@app.post("/api/contests")
async def register_contest(
    contest_in: ContestIn = Body(...),
    repository: QuestionRepository = Depends(get_repository),
):
    if not validate_contest_code(contest_in.contest_code):
        raise HTTPException(status_code=422, detail="Invalid contest code")
    try:
        contest_id = await repository.register_contest(contest_in)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Contest code already registered")
    logger.info(f"Registered contest {contest_in.contest_code} as {contest_id}")
    return {"contest_id": contest_id}


@app.post("/api/contests/{contest_code}/sessions", response_model=SessionStartOut)
async def start_session(
    contest_code: str,
    start_in: SessionStartIn = Body(...),
    repository: QuestionRepository = Depends(get_repository),
    store: ResultStore = Depends(get_store),
    evaluator: TestEvaluator = Depends(get_evaluator),
    sessions: SessionRegistry = Depends(get_registry),
):
    if not validate_contest_code(contest_code):
        raise HTTPException(status_code=422, detail="Invalid contest code")
    if not validate_participant_key(start_in.participant_key):
        raise HTTPException(status_code=422, detail="Invalid participant key")

    contest = await repository.get_contest_by_code(contest_code)
    if contest is None:
        raise HTTPException(status_code=404, detail="Contest not found")
    questions = await repository.get_questions(contest.id)

    session = ContestSession(contest, start_in.participant_key.strip(), questions, evaluator, store)
    await session.start()
    sessions.add(session)

    return SessionStartOut(
        session_id=session.session_id,
        session_token=create_session_token(session.session_id, session.participant_key),
        contest_id=contest.id,
        contest_type=contest.type,
        state=session.state.value,
        end_time=session.end_time,
    )


@app.get("/api/session", response_model=SessionStatusOut)
async def get_session_status(session: ContestSession = Depends(get_current_session)):
    remaining = session.remaining() if session.state is SessionState.RUNNING else None
    return SessionStatusOut(
        session_id=session.session_id,
        state=session.state.value,
        remaining_seconds=int(remaining.total_seconds()) if remaining is not None else None,
        remaining_display=format_remaining(remaining) if remaining is not None else None,
        fullscreen_exits=session.integrity.exit_count,
        warning_active=session.integrity.warning_active,
        grace_deadline=session.integrity.grace_deadline,
        submitted_question_ids=sorted(session.submissions),
    )


@app.get("/api/session/questions", response_model=List[QuestionOut])
async def get_questions(session: ContestSession = Depends(get_current_session)):
    return [question_out(q) for q in session.questions.values()]


@app.get("/api/session/questions/{question_id}/starter", response_model=StarterCodeOut)
async def get_starter_code(
    question_id: int,
    language_id: int,
    session: ContestSession = Depends(get_current_session),
):
    question = get_question_or_404(session, question_id)
    return StarterCodeOut(question_id=question_id, language_id=language_id, code=question.starter_code(language_id))


@app.post("/api/session/questions/{question_id}/run", response_model=RunOut)
async def run_code(
    question_id: int,
    code_in: CodeIn = Body(...),
    session: ContestSession = Depends(get_current_session),
):
    get_question_or_404(session, question_id)
    results = await session.run(question_id, code_in.code, code_in.language_id)
    return RunOut(question_id=question_id, results=[result_out(r) for r in results])


@app.post("/api/session/questions/{question_id}/submit", response_model=SubmissionOut)
async def submit_code(
    question_id: int,
    submit_in: SubmitIn = Body(...),
    session: ContestSession = Depends(get_current_session),
):
    question = get_question_or_404(session, question_id)
    submission = await session.submit(question_id, submit_in.code, submit_in.language_id, submit_in.option_id)
    return submission_out(submission, question)


@app.post("/api/session/code")
async def code_changed(
    change_in: CodeChangeIn = Body(...),
    session: ContestSession = Depends(get_current_session),
):
    await session.on_code_change(change_in.question_id, change_in.code, change_in.language_id)
    return {"state": session.state.value}


@app.get("/api/session/progress", response_model=ProgressOut)
async def get_progress(
    session: ContestSession = Depends(get_current_session),
    store: ResultStore = Depends(get_store),
):
    saved = await store.load_progress(session.contest.id, session.participant_key)
    if saved is None:
        raise HTTPException(status_code=404, detail="No saved progress")
    return ProgressOut(code=saved.code, language_id=saved.language_id, last_updated=saved.last_updated)


@app.post("/api/session/fullscreen", response_model=IntegrityOut)
async def fullscreen_changed(
    fullscreen_in: FullscreenIn = Body(...),
    session: ContestSession = Depends(get_current_session),
):
    message = await session.on_fullscreen_change(fullscreen_in.is_fullscreen)
    return IntegrityOut(
        state=session.state.value,
        fullscreen_exits=session.integrity.exit_count,
        warning=message,
        grace_deadline=session.integrity.grace_deadline,
    )


@app.post("/api/session/end", response_model=ContestSummaryOut)
async def end_contest(session: ContestSession = Depends(get_current_session)):
    summary = await session.end()
    return summary_out(summary)


@app.get("/api/session/summary", response_model=ContestSummaryOut)
async def get_summary(session: ContestSession = Depends(get_current_session)):
    if session.summary is None:
        raise HTTPException(status_code=409, detail="Contest is still in progress")
    return summary_out(session.summary)

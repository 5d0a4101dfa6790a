"""
Contest session lifecycle: countdown, fullscreen integrity monitoring and
finalization.

A ContestSession owns its submissions and integrity counters. All mutation
happens inside its own handlers (start, on_tick, on_fullscreen_change,
on_code_change, submit, finalize), which run one at a time on the event
loop, so no locking is needed.

States::

    not_started -> running -> finalizing -> finalized
                                         -> terminated   (integrity breach)

``finalized`` and ``terminated`` are absorbing: run and submit raise
SessionClosedError once either is reached.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import uuid

from config import contest_settings
from errors import PersistenceError, SessionClosedError, SessionStateError, ValidationError
from evaluation import TestEvaluator, evaluate_mcq
from logger_config import logger
from persistence import ResultStore, SavedProgress
from questions import ContestInfo, ContestType, Question
from results import EvaluationMode, Submission, TestResult
from scoring import QuestionScore, question_max_score, score_contest, summarize

FULLSCREEN_WARNING = "Please return to fullscreen mode to continue the contest"
TERMINATION_MESSAGE = "Contest terminated due to fullscreen violation."
PERSISTENCE_WARNING = "Results may not be properly recorded"


class SessionState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINALIZING = "finalizing"
    FINALIZED = "finalized"
    TERMINATED = "terminated"


class FinishReason(str, Enum):
    TIME_EXPIRED = "time_expired"
    MANUAL_END = "manual_end"
    INTEGRITY_VIOLATION = "integrity_violation"


class IntegrityPolicy(str, Enum):
    # A second exit before the first one is corrected terminates immediately;
    # a single uncorrected exit terminates when the grace period runs out.
    SECOND_EXIT = "second_exit"
    # Only the grace period matters; repeated exits while out are ignored.
    GRACE_TIMEOUT = "grace_timeout"


@dataclass
class IntegrityState:
    in_fullscreen: bool = True
    exit_count: int = 0
    pending_exits: int = 0
    grace_deadline: Optional[datetime] = None

    @property
    def warning_active(self) -> bool:
        return self.grace_deadline is not None


@dataclass(frozen=True)
class ContestSummary:
    session_id: str
    contest_id: int
    participant_key: str
    state: SessionState
    reason: FinishReason
    total_score: int
    max_score: int
    cheating_detected: bool
    persisted: bool
    questions: List[QuestionScore] = field(default_factory=list)
    result_id: Optional[str] = None
    warning: Optional[str] = None


class ContestSession:
    def __init__(
        self,
        contest: ContestInfo,
        participant_key: str,
        questions: Sequence[Question],
        evaluator: TestEvaluator,
        store: ResultStore,
        policy: Optional[IntegrityPolicy] = None,
        grace_period: float = contest_settings.GRACE_PERIOD_SECONDS,
        tick_interval: float = contest_settings.TICK_INTERVAL_SECONDS,
        autosave_interval: float = contest_settings.AUTOSAVE_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.contest = contest
        self.participant_key = participant_key
        self.questions: Dict[int, Question] = {q.id: q for q in questions}
        self.evaluator = evaluator
        self.store = store
        self.policy = policy or IntegrityPolicy(contest_settings.INTEGRITY_POLICY)
        self.grace_period = grace_period
        self.tick_interval = tick_interval
        self.autosave_interval = autosave_interval
        self._clock = clock

        self.state = SessionState.NOT_STARTED
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self.integrity = IntegrityState()

        # Latest submission per question is the authoritative one
        self.submissions: Dict[int, Submission] = {}
        self.history: List[Submission] = []
        self._latest_draft: Optional[Tuple[int, str, Optional[int]]] = None
        self._draft_dirty = False
        self.restored_progress: Optional[SavedProgress] = None

        self.summary: Optional[ContestSummary] = None
        self._finalized = asyncio.Event()

        self._countdown_task: Optional[asyncio.Task] = None
        self._grace_task: Optional[asyncio.Task] = None
        self._autosave_task: Optional[asyncio.Task] = None

    # ===== LIFECYCLE =====

    @property
    def is_practice(self) -> bool:
        return self.contest.type is ContestType.PRACTICE

    @property
    def is_closed(self) -> bool:
        return self.state in (SessionState.FINALIZED, SessionState.TERMINATED)

    async def start(self):
        if self.state is not SessionState.NOT_STARTED:
            raise SessionStateError(f"Session {self.session_id} already {self.state.value}")

        self.start_time = self._clock()
        self.state = SessionState.RUNNING

        if self.is_practice:
            await self._restore_progress()
            self._autosave_task = asyncio.create_task(self._autosave_loop())
            logger.info(f"Practice session {self.session_id} started for {self.participant_key}")
            return

        self.end_time = self.start_time + timedelta(minutes=self.contest.duration_minutes)
        self._countdown_task = asyncio.create_task(self._countdown())
        logger.info(
            f"Session {self.session_id} started for {self.participant_key}, "
            f"contest {self.contest.id} ends at {self.end_time.strftime('%H:%M:%S')}"
        )

    def remaining(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Time left before auto-termination, or None for untimed practice sessions."""
        if self.end_time is None:
            return None
        remaining = self.end_time - (now or self._clock())
        return max(remaining, timedelta(0))

    async def _countdown(self):
        while self.state is SessionState.RUNNING:
            await asyncio.sleep(self.tick_interval)
            await self.on_tick()

    async def on_tick(self, now: Optional[datetime] = None) -> Optional[ContestSummary]:
        if self.state is not SessionState.RUNNING or self.end_time is None:
            return None
        if (now or self._clock()) >= self.end_time:
            logger.info(f"Session {self.session_id}: contest time is up")
            return await self.finalize(FinishReason.TIME_EXPIRED)
        return None

    async def end(self) -> ContestSummary:
        return await self.finalize(FinishReason.MANUAL_END)

    async def finalize(self, reason: FinishReason) -> ContestSummary:
        """Freeze the session, score it and persist the result. Runs at most once."""
        if self.state is SessionState.NOT_STARTED:
            raise SessionStateError(f"Session {self.session_id} was never started")
        if self.state is not SessionState.RUNNING:
            await self._finalized.wait()
            return self.summary

        self.state = SessionState.FINALIZING
        cheating_detected = reason is FinishReason.INTEGRITY_VIOLATION
        final_state = SessionState.TERMINATED if cheating_detected else SessionState.FINALIZED
        self._cancel_timers()

        questions = list(self.questions.values())
        total_score = score_contest(self.submissions, questions)
        result_id = None
        try:
            if self.is_practice and self._draft_dirty:
                await self._save_progress()
            result_id = await self.store.save_result(
                self.contest.id,
                self.participant_key,
                total_score,
                cheating_detected,
                list(self.submissions.values()),
            )
        except PersistenceError as e:
            logger.error(f"Session {self.session_id}: result not persisted: {e}")
        except Exception:
            logger.exception(f"Session {self.session_id}: unexpected error while saving the result")
        finally:
            self.state = final_state
            self.finished_at = self._clock()
            self.summary = ContestSummary(
                session_id=self.session_id,
                contest_id=self.contest.id,
                participant_key=self.participant_key,
                state=final_state,
                reason=reason,
                total_score=total_score,
                max_score=sum(question_max_score(q) for q in questions),
                cheating_detected=cheating_detected,
                persisted=result_id is not None,
                questions=summarize(self.submissions, questions),
                result_id=result_id,
                warning=None if result_id is not None else PERSISTENCE_WARNING,
            )
            self._finalized.set()

        logger.info(
            f"Session {self.session_id} {self.state.value} ({reason.value}): "
            f"{total_score}/{self.summary.max_score}"
        )
        return self.summary

    def _cancel_timers(self):
        current = asyncio.current_task()
        for task in (self._countdown_task, self._grace_task, self._autosave_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._countdown_task = None
        self._grace_task = None
        self._autosave_task = None

    async def close(self):
        """Stop background timers without finalizing (process shutdown)."""
        self._cancel_timers()

    # ===== INTEGRITY =====

    async def on_fullscreen_change(self, is_fullscreen: bool) -> Optional[str]:
        """Record a fullscreen change. Returns a message for the participant, if any."""
        if self.state is not SessionState.RUNNING or self.is_practice:
            return None

        if is_fullscreen:
            if not self.integrity.in_fullscreen:
                logger.info(f"Session {self.session_id}: returned to fullscreen")
            self.integrity.in_fullscreen = True
            self.integrity.pending_exits = 0
            self.integrity.grace_deadline = None
            if self._grace_task is not None and not self._grace_task.done():
                self._grace_task.cancel()
            self._grace_task = None
            return None

        self.integrity.exit_count += 1
        self.integrity.pending_exits += 1
        logger.warning(
            f"Session {self.session_id}: fullscreen exit #{self.integrity.exit_count} "
            f"({self.integrity.pending_exits} uncorrected)"
        )

        if self.integrity.pending_exits == 1:
            self.integrity.in_fullscreen = False
            self.integrity.grace_deadline = self._clock() + timedelta(seconds=self.grace_period)
            self._grace_task = asyncio.create_task(self._grace_timer())
            return FULLSCREEN_WARNING

        if self.policy is IntegrityPolicy.SECOND_EXIT:
            logger.warning(f"Session {self.session_id}: second fullscreen exit, terminating")
            await self.finalize(FinishReason.INTEGRITY_VIOLATION)
            return TERMINATION_MESSAGE
        return FULLSCREEN_WARNING

    async def _grace_timer(self):
        await asyncio.sleep(self.grace_period)
        if self.state is SessionState.RUNNING and not self.integrity.in_fullscreen:
            logger.warning(f"Session {self.session_id}: out of fullscreen for {self.grace_period}s, terminating")
            self._grace_task = None
            await self.finalize(FinishReason.INTEGRITY_VIOLATION)

    # ===== CODE & PROGRESS =====

    async def on_code_change(self, question_id: int, code: str, language_id: Optional[int] = None):
        if self.state is not SessionState.RUNNING:
            logger.debug(f"Session {self.session_id}: ignoring code change after close")
            return
        self._get_question(question_id)
        self._latest_draft = (question_id, code, language_id)
        self._draft_dirty = True
        if self.is_practice:
            await self._save_progress()

    async def _save_progress(self) -> bool:
        if self._latest_draft is None:
            return False
        _, code, language_id = self._latest_draft
        try:
            await self.store.save_progress(self.contest.id, self.participant_key, code, language_id)
        except PersistenceError as e:
            logger.warning(f"Session {self.session_id}: autosave failed: {e}")
            return False
        self._draft_dirty = False
        logger.debug(f"Session {self.session_id}: progress saved")
        return True

    async def _autosave_loop(self):
        while self.state is SessionState.RUNNING:
            await asyncio.sleep(self.autosave_interval)
            if self._draft_dirty and self.state is SessionState.RUNNING:
                await self._save_progress()

    async def _restore_progress(self):
        try:
            saved = await self.store.load_progress(self.contest.id, self.participant_key)
        except PersistenceError as e:
            logger.warning(f"Session {self.session_id}: could not load saved progress: {e}")
            return
        if saved is not None:
            self.restored_progress = saved
            logger.info(f"Session {self.session_id}: restored saved progress")

    # ===== EVALUATION =====

    def _ensure_running(self):
        if self.state is not SessionState.RUNNING:
            raise SessionClosedError(f"Session {self.session_id} is {self.state.value}")

    def _get_question(self, question_id: int) -> Question:
        question = self.questions.get(question_id)
        if question is None:
            raise ValidationError(f"Question {question_id} is not part of this contest")
        return question

    async def run(self, question_id: int, code: str, language_id: Optional[int]) -> List[TestResult]:
        """Evaluate against visible test cases only. Results are never scored."""
        self._ensure_running()
        question = self._get_question(question_id)
        if question.is_mcq:
            raise ValidationError("Multiple-choice questions cannot be run")
        return await self.evaluator.evaluate(code, language_id, question.test_cases, EvaluationMode.RUN)

    async def submit(
        self,
        question_id: int,
        code: str = "",
        language_id: Optional[int] = None,
        option_id: Optional[str] = None,
    ) -> Submission:
        """Evaluate against all test cases and record the result as the question's latest submission."""
        self._ensure_running()
        question = self._get_question(question_id)

        if question.is_mcq:
            results = [evaluate_mcq(question, option_id)]
            code, language_id = option_id, None
        else:
            results = await self.evaluator.evaluate(code, language_id, question.test_cases, EvaluationMode.SUBMIT)

        # The session may have been finalized while the judge was busy
        if self.state is not SessionState.RUNNING:
            logger.info(f"Session {self.session_id}: discarding submission for question {question_id}")
            raise SessionClosedError(f"Session {self.session_id} closed before the submission completed")

        submission = Submission(
            question_id=question_id,
            code=code,
            language_id=language_id,
            results=results,
            submitted_at=self._clock(),
        )
        self.submissions[question_id] = submission
        self.history.append(submission)
        logger.info(f"Session {self.session_id}: question {question_id} submitted")
        return submission


class SessionRegistry:
    """In-process map of live and finished sessions.

    A finished session stays readable for ``retention`` so its summary can still be fetched,
    then it is dropped the next time a session is added.
    """

    def __init__(
        self,
        retention: timedelta = timedelta(minutes=contest_settings.SESSION_RETENTION_MINUTES),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.retention = retention
        self._clock = clock
        self._sessions: Dict[str, ContestSession] = {}

    def add(self, session: ContestSession):
        self.prune()
        self._sessions[session.session_id] = session

    def prune(self, now: Optional[datetime] = None) -> int:
        now = now or self._clock()
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.finished_at is not None and now - session.finished_at >= self.retention
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"Dropped {len(expired)} finished session(s) from the registry")
        return len(expired)

    def get(self, session_id: str) -> Optional[ContestSession]:
        return self._sessions.get(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    async def close_all(self):
        for session in self._sessions.values():
            await session.close()

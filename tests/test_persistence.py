"""
Tests for the result store and question repository against a SQLite database.
"""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.pool import NullPool

from database import DatabaseSessionManager
from errors import PersistenceError
from model import Base, ContestResult, QuestionSubmission
from payload import ContestIn, OptionIn, QuestionIn
from payload import TestCasePayload as CasePayload
from persistence import ResultStore
from questions import ContestType, QuestionType
from repository import QuestionRepository
from results import Submission, TestOutcome, TestResult


def sqlite_manager(path):
    return DatabaseSessionManager(f"sqlite+aiosqlite:///{path}", {"poolclass": NullPool})


def contest_in(code="arenacnst-0001"):
    return ContestIn(
        name="Weekly Arena",
        contest_code=code,
        type=ContestType.ASSESSMENT,
        duration_minutes=45,
        questions=[
            QuestionIn(
                title="Sum Two Numbers",
                description="Read two integers and print their sum.",
                constraints=["-10^9 <= a, b <= 10^9"],
                test_cases=[
                    CasePayload(input="5 7", expected_output="12", points=5, visible=True),
                    CasePayload(input="-3 3", expected_output="0", points=10),
                ],
                templates={71: "def solve():\n    pass\n"},
            ),
            QuestionIn(
                title="Complexity",
                type=QuestionType.MCQ,
                options=[OptionIn(text="O(n)"), OptionIn(text="O(log n)", is_correct=True)],
                points=5,
            ),
        ],
    )


def passing_submission(question_id, points):
    result = TestResult(index=1, outcome=TestOutcome.SUCCESS, points=points, max_points=points, visible=False)
    return Submission(question_id=question_id, code="print(12)", language_id=71, results=[result])


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "arena.db"


class TestResultStore:
    """Test saving results and practice progress."""

    def test_each_save_inserts_a_new_result(self, db_path):
        async def scenario():
            manager = sqlite_manager(db_path)
            await manager.create_tables(Base)
            store = ResultStore(manager)
            first = await store.save_result(7, "PRN2025001", 15, False, [passing_submission(1, 15)])
            second = await store.save_result(7, "PRN2025001", 0, True, [])
            async with manager.session() as session:
                results = (await session.execute(select(ContestResult).order_by(ContestResult.created_at))).scalars().all()
                submission_count = await session.scalar(select(func.count()).select_from(QuestionSubmission))
                stored = (await session.execute(select(QuestionSubmission))).scalars().one()
            await manager.close()
            return first, second, results, submission_count, stored

        first, second, results, submission_count, stored = asyncio.run(scenario())

        assert first != second
        assert {r.id for r in results} == {first, second}
        assert {(r.score, r.cheating_detected) for r in results} == {(15, False), (0, True)}
        assert submission_count == 1
        assert stored.result_id == first
        assert stored.score == 15
        assert stored.code == "print(12)"

    def test_progress_is_upserted(self, db_path):
        async def scenario():
            manager = sqlite_manager(db_path)
            await manager.create_tables(Base)
            store = ResultStore(manager)
            missing = await store.load_progress(7, "PRN2025001")
            await store.save_progress(7, "PRN2025001", "print(1)", 71)
            await store.save_progress(7, "PRN2025001", "print(2)", 54)
            saved = await store.load_progress(7, "PRN2025001")
            other = await store.load_progress(7, "PRN2025002")
            await manager.close()
            return missing, saved, other

        missing, saved, other = asyncio.run(scenario())

        assert missing is None
        assert saved.code == "print(2)"
        assert saved.language_id == 54
        assert saved.last_updated is not None
        assert other is None

    def test_database_failure_raises_persistence_error(self, db_path):
        async def scenario():
            # tables never created
            manager = sqlite_manager(db_path)
            try:
                await ResultStore(manager).save_result(7, "PRN2025001", 10, False, [])
            finally:
                await manager.close()

        with pytest.raises(PersistenceError):
            asyncio.run(scenario())

    def test_progress_failure_raises_persistence_error(self, db_path):
        async def scenario():
            manager = sqlite_manager(db_path)
            try:
                await ResultStore(manager).load_progress(7, "PRN2025001")
            finally:
                await manager.close()

        with pytest.raises(PersistenceError):
            asyncio.run(scenario())


class TestQuestionRepository:
    """Test contest registration and question loading."""

    def test_registered_contest_round_trips(self, db_path):
        async def scenario():
            manager = sqlite_manager(db_path)
            await manager.create_tables(Base)
            repository = QuestionRepository(manager)
            contest_id = await repository.register_contest(contest_in())
            contest = await repository.get_contest_by_code("arenacnst-0001")
            questions = await repository.get_questions(contest_id)
            await manager.close()
            return contest_id, contest, questions

        contest_id, contest, questions = asyncio.run(scenario())

        assert contest.id == contest_id
        assert contest.duration_minutes == 45
        assert contest.type is ContestType.ASSESSMENT

        coding, mcq = questions
        assert coding.type is QuestionType.CODING
        assert [tc.points for tc in coding.test_cases] == [5, 10]
        assert [tc.visible for tc in coding.test_cases] == [True, False]
        assert coding.constraints == ("-10^9 <= a, b <= 10^9",)
        assert coding.starter_code(71) == "def solve():\n    pass\n"
        assert coding.starter_code(50).startswith("#include <stdio.h>")

        assert mcq.is_mcq
        assert mcq.points == 5
        assert [o.is_correct for o in mcq.options] == [False, True]

    def test_database_failure_raises_persistence_error(self, db_path):
        async def scenario():
            # tables never created
            manager = sqlite_manager(db_path)
            try:
                await QuestionRepository(manager).get_contest_by_code("arenacnst-0001")
            finally:
                await manager.close()

        with pytest.raises(PersistenceError):
            asyncio.run(scenario())

    def test_unknown_contest_code(self, db_path):
        async def scenario():
            manager = sqlite_manager(db_path)
            await manager.create_tables(Base)
            contest = await QuestionRepository(manager).get_contest_by_code("arenacnst-9999")
            await manager.close()
            return contest

        assert asyncio.run(scenario()) is None

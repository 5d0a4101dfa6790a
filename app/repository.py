from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from database import DatabaseSessionManager
from errors import PersistenceError
from logger_config import logger
from model import (
    AnswerOption,
    Contest,
    ContestQuestion,
    LanguageTemplate,
    QuestionConstraint,
    QuestionExample,
    QuestionTestCase,
)
from payload import ContestIn
from questions import ContestInfo, Example, McqOption, Question, QuestionType, TestCase


def _to_contest_info(contest: Contest) -> ContestInfo:
    return ContestInfo(
        id=contest.id,
        name=contest.name,
        contest_code=contest.contest_code,
        type=contest.type,
        duration_minutes=contest.duration_mins,
    )


def _to_question(row: ContestQuestion) -> Question:
    return Question(
        id=row.id,
        title=row.title,
        description=row.description,
        type=row.question_type,
        examples=tuple(Example(input=e.input, output=e.output, explanation=e.explanation) for e in row.examples),
        constraints=tuple(c.description for c in row.constraints),
        test_cases=tuple(
            TestCase(input=tc.input, expected_output=tc.expected_output, points=tc.points, visible=tc.is_visible)
            for tc in row.test_cases
        ),
        options=tuple(McqOption(id=str(o.id), text=o.option_text, is_correct=o.is_correct) for o in row.options),
        points=row.points,
        templates={t.language_id: t.template for t in row.templates},
    )


class QuestionRepository:
    """Read side of contests and their questions, plus admin registration."""

    def __init__(self, manager: DatabaseSessionManager):
        self._manager = manager

    async def get_contest_by_code(self, contest_code: str) -> Optional[ContestInfo]:
        try:
            async with self._manager.session() as session:
                result = await session.execute(select(Contest).where(Contest.contest_code == contest_code))
                contest = result.scalars().first()
                return _to_contest_info(contest) if contest else None
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to load contest {contest_code}: {e}")
            raise PersistenceError("Contest could not be loaded") from e

    async def get_questions(self, contest_id: int) -> List[Question]:
        try:
            async with self._manager.session() as session:
                result = await session.execute(
                    select(ContestQuestion)
                    .options(
                        selectinload(ContestQuestion.examples),
                        selectinload(ContestQuestion.constraints),
                        selectinload(ContestQuestion.test_cases),
                        selectinload(ContestQuestion.options),
                        selectinload(ContestQuestion.templates),
                    )
                    .where(ContestQuestion.contest_id == contest_id)
                    .order_by(ContestQuestion.id)
                )
                return [_to_question(row) for row in result.scalars().all()]
        except (SQLAlchemyError, OSError, ValueError) as e:
            logger.error(f"Failed to load questions for contest {contest_id}: {e}")
            raise PersistenceError("Questions could not be loaded") from e

    async def _insert_contest(self, contest_in: ContestIn) -> int:
        async with self._manager.session() as session:
            new_contest = Contest(
                name=contest_in.name,
                contest_code=contest_in.contest_code,
                description=contest_in.description,
                type=contest_in.type,
                duration_mins=contest_in.duration_minutes,
                start_at=contest_in.start_at,
                end_at=contest_in.end_at,
            )
            session.add(new_contest)
            await session.flush()

            for question_in in contest_in.questions:
                new_question = ContestQuestion(
                    contest_id=new_contest.id,
                    title=question_in.title,
                    description=question_in.description,
                    question_type=question_in.type,
                    points=question_in.points if question_in.type is QuestionType.MCQ else 0,
                    image_url=question_in.image_url,
                )
                session.add(new_question)
                await session.flush()

                for example in question_in.examples:
                    session.add(
                        QuestionExample(
                            question_id=new_question.id,
                            input=example.input,
                            output=example.output,
                            explanation=example.explanation,
                        )
                    )
                for constraint in question_in.constraints:
                    session.add(QuestionConstraint(question_id=new_question.id, description=constraint))
                for tc in question_in.test_cases:
                    session.add(
                        QuestionTestCase(
                            question_id=new_question.id,
                            input=tc.input,
                            expected_output=tc.expected_output,
                            points=tc.points,
                            is_visible=tc.visible,
                        )
                    )
                for option in question_in.options:
                    session.add(
                        AnswerOption(
                            question_id=new_question.id,
                            option_text=option.text,
                            is_correct=option.is_correct,
                        )
                    )
                for language_id, template in question_in.templates.items():
                    session.add(
                        LanguageTemplate(question_id=new_question.id, language_id=language_id, template=template)
                    )

            await session.commit()
            return new_contest.id

    async def register_contest(self, contest_in: ContestIn) -> int:
        """Insert a contest with all its questions. A duplicate contest code raises IntegrityError."""
        try:
            return await self._insert_contest(contest_in)
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to register contest {contest_in.contest_code}: {e}")
            raise PersistenceError("Contest could not be registered") from e

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from database import DatabaseSessionManager
from errors import PersistenceError
from logger_config import logger
from model import ContestResult, Progress, QuestionSubmission
from results import Submission
from scoring import score_question


@dataclass(frozen=True)
class SavedProgress:
    code: str
    language_id: Optional[int]
    last_updated: Optional[datetime] = None


class ResultStore:
    """Durable storage for final results and practice-mode progress."""

    def __init__(self, manager: DatabaseSessionManager):
        self._manager = manager

    async def save_result(
        self,
        contest_id: int,
        participant_key: str,
        total_score: int,
        cheating_detected: bool,
        submissions: Iterable[Submission],
    ) -> str:
        """Insert a new result row and one submission row per question. Returns the result id."""
        try:
            async with self._manager.session() as session:
                result = ContestResult(
                    contest_id=contest_id,
                    participant_key=participant_key,
                    score=total_score,
                    cheating_detected=cheating_detected,
                )
                session.add(result)
                await session.flush()

                for submission in submissions:
                    session.add(
                        QuestionSubmission(
                            id=submission.id,
                            result_id=result.id,
                            question_id=submission.question_id,
                            language_id=submission.language_id,
                            code=submission.code,
                            score=score_question(submission.results),
                            submitted_at=submission.submitted_at,
                        )
                    )
                await session.commit()
                logger.info(f"Saved result {result.id} for {participant_key} in contest {contest_id}: {total_score}")
                return result.id
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to save result for {participant_key} in contest {contest_id}: {e}")
            raise PersistenceError("Results may not be properly recorded") from e

    async def save_progress(self, contest_id: int, participant_key: str, code: str, language_id: Optional[int]):
        try:
            async with self._manager.session() as session:
                result = await session.execute(
                    select(Progress)
                    .where(Progress.contest_id == contest_id)
                    .where(Progress.participant_key == participant_key)
                )
                progress = result.scalars().first()
                if progress is None:
                    session.add(
                        Progress(
                            contest_id=contest_id,
                            participant_key=participant_key,
                            user_code=code,
                            language_id=language_id,
                        )
                    )
                else:
                    progress.user_code = code
                    progress.language_id = language_id
                    progress.last_updated = datetime.now()
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to save progress for {participant_key} in contest {contest_id}: {e}")
            raise PersistenceError("Progress could not be saved") from e

    async def load_progress(self, contest_id: int, participant_key: str) -> Optional[SavedProgress]:
        try:
            async with self._manager.session() as session:
                result = await session.execute(
                    select(Progress)
                    .where(Progress.contest_id == contest_id)
                    .where(Progress.participant_key == participant_key)
                )
                progress = result.scalars().first()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to load progress for {participant_key} in contest {contest_id}: {e}")
            raise PersistenceError("Progress could not be loaded") from e

        if progress is None:
            return None
        return SavedProgress(code=progress.user_code, language_id=progress.language_id, last_updated=progress.last_updated)

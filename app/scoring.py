"""
Score aggregation.

All functions here are pure: the same submissions and questions always give
the same totals, whether called from a live submit, a timeout finalize or a
manual end.
"""

from dataclasses import dataclass
from typing import Iterable, List, Mapping

from questions import Question, TestCase
from results import Submission, TestResult


@dataclass(frozen=True)
class QuestionScore:
    question_id: int
    title: str
    submitted: bool
    score: int
    max_score: int


def score_question(results: Iterable[TestResult]) -> int:
    return sum(result.points for result in results if result.passed)


def max_score(test_cases: Iterable[TestCase]) -> int:
    return sum(tc.points for tc in test_cases)


def question_max_score(question: Question) -> int:
    if question.is_mcq:
        return question.points
    return max_score(question.test_cases)


def score_contest(submissions: Mapping[int, Submission], questions: Iterable[Question]) -> int:
    """Sum of question scores; questions without a submission contribute 0."""
    total = 0
    for question in questions:
        submission = submissions.get(question.id)
        if submission is not None:
            total += score_question(submission.results)
    return total


def summarize(submissions: Mapping[int, Submission], questions: Iterable[Question]) -> List[QuestionScore]:
    breakdown = []
    for question in questions:
        submission = submissions.get(question.id)
        breakdown.append(
            QuestionScore(
                question_id=question.id,
                title=question.title,
                submitted=submission is not None,
                score=score_question(submission.results) if submission is not None else 0,
                max_score=question_max_score(question),
            )
        )
    return breakdown

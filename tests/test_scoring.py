"""
Tests for the scoring aggregator.
"""

from results import Submission, TestOutcome, TestResult
from scoring import max_score, question_max_score, score_contest, score_question, summarize

from fakes import coding_question, mcq_question


def result(index, passed, points):
    return TestResult(
        index=index,
        outcome=TestOutcome.SUCCESS if passed else TestOutcome.ERROR,
        points=points if passed else 0,
        max_points=points,
        visible=False,
    )


def submission(question_id, *results):
    return Submission(question_id=question_id, code="code", language_id=71, results=list(results))


class TestQuestionScore:
    def test_sums_successful_points_only(self):
        results = [result(1, True, 5), result(2, False, 5), result(3, True, 10)]

        assert score_question(results) == 15

    def test_is_idempotent(self):
        results = [result(1, True, 5), result(2, True, 5)]

        assert score_question(results) == score_question(results) == 10

    def test_empty_results_score_zero(self):
        assert score_question([]) == 0


class TestMaxScore:
    def test_sum_of_case_points(self):
        assert max_score(coding_question().test_cases) == 20

    def test_mcq_uses_question_points(self):
        assert question_max_score(mcq_question()) == 5
        assert question_max_score(coding_question()) == 20


class TestContestScore:
    def test_unsubmitted_questions_contribute_zero(self):
        questions = [coding_question(1), mcq_question(2)]
        submissions = {1: submission(1, result(1, True, 5), result(2, True, 5), result(3, False, 10))}

        assert score_contest(submissions, questions) == 10

    def test_equals_sum_of_question_scores_and_never_exceeds_max(self):
        questions = [coding_question(1), mcq_question(2)]
        submissions = {
            1: submission(1, result(1, True, 5), result(2, True, 5), result(3, True, 10)),
            2: submission(2, result(1, True, 5)),
        }

        total = score_contest(submissions, questions)

        assert total == sum(score_question(s.results) for s in submissions.values())
        assert total <= sum(question_max_score(q) for q in questions)
        assert total == 25

    def test_submissions_for_unknown_questions_are_ignored(self):
        submissions = {99: submission(99, result(1, True, 50))}

        assert score_contest(submissions, [coding_question(1)]) == 0


class TestSummary:
    def test_breakdown_per_question(self):
        questions = [coding_question(1), mcq_question(2)]
        submissions = {2: submission(2, result(1, True, 5))}

        breakdown = summarize(submissions, questions)

        assert [(q.question_id, q.submitted, q.score, q.max_score) for q in breakdown] == [
            (1, False, 0, 20),
            (2, True, 5, 5),
        ]

"""
Tests for the test evaluation engine.

Covers:
- Outcome classification (accepted, mismatch, judge error, timeout)
- Run mode (visible cases only) versus submit mode (all cases)
- Per-case failure isolation
- Pre-dispatch validation
- Multiple-choice evaluation
"""

import asyncio
import json

import httpx
import pytest

from errors import TransportError, ValidationError
from evaluation import MISMATCH_MESSAGE, TIMEOUT_MESSAGE, TestEvaluator, evaluate_mcq
from judge_client import JudgeClient
from questions import TestCase
from results import EvaluationMode, TestOutcome

from fakes import ScriptedJudge, coding_question, mcq_question, no_sleep, verdict

SCENARIO_CASE = TestCase(input="5 7", expected_output="12", points=5, visible=True)


def evaluate(judge, code, cases, mode=EvaluationMode.SUBMIT, language_id=71):
    evaluator = TestEvaluator(judge, poll_interval=1.0, max_attempts=10, sleep=no_sleep)
    return asyncio.run(evaluator.evaluate(code, language_id, cases, mode))


class TestClassification:
    """Test how judge verdicts turn into outcomes."""

    def test_accepted_with_matching_output_succeeds(self):
        judge = ScriptedJudge([[verdict(3, stdout="12")]])

        [result] = evaluate(judge, "print(12)", [SCENARIO_CASE])

        assert result.outcome is TestOutcome.SUCCESS
        assert result.points == 5
        assert result.message is None
        assert result.index == 1

    def test_output_compared_after_trimming(self):
        judge = ScriptedJudge([[verdict(3, stdout="  12\n\n")]])

        [result] = evaluate(judge, "print(12)", [SCENARIO_CASE])

        assert result.passed

    def test_accepted_with_wrong_output_fails(self):
        judge = ScriptedJudge([[verdict(3, stdout="13")]])

        [result] = evaluate(judge, "print(13)", [SCENARIO_CASE])

        assert result.outcome is TestOutcome.ERROR
        assert result.message == MISMATCH_MESSAGE
        assert result.points == 0
        assert result.output == "13"

    def test_no_terminal_verdict_times_out(self):
        judge = ScriptedJudge([[verdict(1), verdict(2)]])

        [result] = evaluate(judge, "while True: pass", [SCENARIO_CASE])

        assert result.outcome is TestOutcome.ERROR
        assert result.message == TIMEOUT_MESSAGE
        assert result.points == 0
        assert judge.polls["token-1"] == 10

    def test_non_accepted_terminal_uses_judge_description(self):
        judge = ScriptedJudge([[verdict(6, compile_output="error: expected ';'")]])

        [result] = evaluate(judge, "int main( {", [SCENARIO_CASE], language_id=54)

        assert result.outcome is TestOutcome.ERROR
        assert result.message == "Compilation Error"
        assert result.details == "error: expected ';'"

    def test_polling_stops_once_terminal(self):
        judge = ScriptedJudge([[verdict(1), verdict(2), verdict(3, stdout="12")]])

        evaluate(judge, "print(12)", [SCENARIO_CASE])

        assert judge.polls["token-1"] == 3

    def test_case_input_and_expected_sent_to_judge(self):
        judge = ScriptedJudge([[verdict(3, stdout="12")]])

        evaluate(judge, "print(12)", [SCENARIO_CASE])

        assert judge.dispatched[0]["stdin"] == "5 7"
        assert judge.dispatched[0]["expected"] == "12"
        assert judge.dispatched[0]["language_id"] == 71


class TestModes:
    """Test run versus submit."""

    def test_run_only_evaluates_visible_cases(self):
        question = coding_question()
        judge = ScriptedJudge([[verdict(3, stdout="12")], [verdict(3, stdout="2")]])

        results = evaluate(judge, "code", question.test_cases, EvaluationMode.RUN)

        assert [r.index for r in results] == [1, 2]
        assert all(r.visible for r in results)
        assert len(judge.dispatched) == 2

    def test_submit_evaluates_all_cases_and_hides_hidden_io(self):
        question = coding_question()
        judge = ScriptedJudge(
            [[verdict(3, stdout="12")], [verdict(3, stdout="2")], [verdict(3, stdout="0")]]
        )

        results = evaluate(judge, "code", question.test_cases, EvaluationMode.SUBMIT)

        assert [r.index for r in results] == [1, 2, 3]
        assert [r.points for r in results] == [5, 5, 10]
        hidden = results[2]
        assert not hidden.visible
        assert hidden.input is None
        assert hidden.expected is None
        assert hidden.output is None
        assert results[0].input == "5 7"
        assert results[0].expected == "12"


class TestFailureIsolation:
    """A failure on one case must not drop the others."""

    def test_dispatch_failure_on_middle_case(self):
        question = coding_question()
        judge = ScriptedJudge(
            [[verdict(3, stdout="12")], TransportError("connection reset"), [verdict(3, stdout="0")]]
        )

        results = evaluate(judge, "code", question.test_cases)

        assert len(results) == 3
        assert results[0].passed
        assert results[1].outcome is TestOutcome.ERROR
        assert results[1].message.startswith(TIMEOUT_MESSAGE)
        assert results[2].passed

    def test_malformed_verdict_on_middle_case(self):
        question = coding_question()
        verdicts = {
            "5 7": {"status": {"id": 3, "description": "Accepted"}, "stdout": "12\n"},
            "1 1": {"status": {"id": None}},
            "-3 3": {"status": {"id": 3, "description": "Accepted"}, "stdout": "0\n"},
        }

        def handler(request):
            if request.method == "POST":
                return httpx.Response(201, json={"token": json.loads(request.content)["stdin"].replace(" ", "_")})
            token = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json=verdicts[token.replace("_", " ")])

        judge = JudgeClient(
            base_url="http://judge.test/submissions",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

        results = evaluate(judge, "code", question.test_cases)

        assert [r.outcome for r in results] == [TestOutcome.SUCCESS, TestOutcome.ERROR, TestOutcome.SUCCESS]
        assert results[1].message.startswith(TIMEOUT_MESSAGE)

    def test_poll_failure_on_first_case(self):
        question = coding_question()
        judge = ScriptedJudge(
            [[verdict(1), TransportError("timeout")], [verdict(3, stdout="2")], [verdict(3, stdout="0")]]
        )

        results = evaluate(judge, "code", question.test_cases)

        assert [r.outcome for r in results] == [TestOutcome.ERROR, TestOutcome.SUCCESS, TestOutcome.SUCCESS]


class TestValidation:
    """Test rejection before anything is dispatched."""

    @pytest.mark.parametrize("code", ["", "   \n\t"])
    def test_empty_code_rejected(self, code):
        judge = ScriptedJudge([])

        with pytest.raises(ValidationError):
            evaluate(judge, code, [SCENARIO_CASE])

        assert judge.dispatched == []

    def test_missing_language_rejected(self):
        judge = ScriptedJudge([])

        with pytest.raises(ValidationError):
            evaluate(judge, "print(1)", [SCENARIO_CASE], language_id=None)

    def test_unsupported_language_rejected(self):
        judge = ScriptedJudge([])

        with pytest.raises(ValidationError, match="Unsupported language"):
            evaluate(judge, "print(1)", [SCENARIO_CASE], language_id=999)

        assert judge.dispatched == []


class TestMcq:
    """Test multiple-choice scoring."""

    def test_correct_option_scores_full_points(self):
        result = evaluate_mcq(mcq_question(), "b")

        assert result.passed
        assert result.points == 5
        assert result.max_points == 5

    def test_wrong_option_scores_zero(self):
        result = evaluate_mcq(mcq_question(), "a")

        assert not result.passed
        assert result.points == 0

    def test_no_option_rejected(self):
        with pytest.raises(ValidationError):
            evaluate_mcq(mcq_question(), None)

    def test_foreign_option_rejected(self):
        with pytest.raises(ValidationError):
            evaluate_mcq(mcq_question(), "z")

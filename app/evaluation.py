import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence

from config import judge_settings
from errors import EvaluationTimeoutError, TransportError, ValidationError
from judge_client import JudgeClient, JudgeVerdict, Terminal, poll_until_terminal
from logger_config import logger
from questions import LANGUAGES, Question, TestCase
from results import EvaluationMode, TestOutcome, TestResult

TIMEOUT_MESSAGE = "Evaluation timed out or failed."
MISMATCH_MESSAGE = "Output does not match expected result."


def outputs_match(actual: Optional[str], expected: str) -> bool:
    return (actual or "").strip() == expected.strip()


class TestEvaluator:
    """Runs one piece of code against a question's test cases through the judge.

    Cases are evaluated strictly in order; a failure on one case never stops
    the remaining ones.
    """

    def __init__(
        self,
        judge: JudgeClient,
        poll_interval: float = judge_settings.POLL_INTERVAL_SECONDS,
        max_attempts: int = judge_settings.POLL_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.judge = judge
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def evaluate(
        self,
        code: str,
        language_id: Optional[int],
        test_cases: Sequence[TestCase],
        mode: EvaluationMode = EvaluationMode.SUBMIT,
    ) -> List[TestResult]:
        if not code or not code.strip():
            raise ValidationError("Code cannot be empty")
        if language_id is None:
            raise ValidationError("A language must be selected")
        if language_id not in LANGUAGES:
            raise ValidationError(f"Unsupported language id {language_id}")

        if mode is EvaluationMode.RUN:
            cases = [tc for tc in test_cases if tc.visible]
        else:
            cases = list(test_cases)

        results = []
        for index, test_case in enumerate(cases, start=1):
            result = await self.evaluate_case(index, code, language_id, test_case)
            logger.debug(f"[{mode.value}] case {index}: {result.outcome.value} ({result.points}/{test_case.points})")
            results.append(result)
        return results

    async def evaluate_case(self, index: int, code: str, language_id: int, test_case: TestCase) -> TestResult:
        try:
            verdict = await self.await_verdict(code, language_id, test_case)
        except TransportError as e:
            logger.warning(f"Test case {index} aborted: {e}")
            return self._build_result(index, test_case, TestOutcome.ERROR, f"{TIMEOUT_MESSAGE} ({e})")
        except EvaluationTimeoutError as e:
            logger.warning(f"Test case {index} timed out: {e}")
            return self._build_result(index, test_case, TestOutcome.ERROR, TIMEOUT_MESSAGE)

        details = verdict.compile_output or verdict.stderr
        if not verdict.status.is_accepted:
            message = verdict.description or verdict.status.name.replace("_", " ").title()
            return self._build_result(index, test_case, TestOutcome.ERROR, message, verdict.stdout, details)

        if outputs_match(verdict.stdout, test_case.expected_output):
            return self._build_result(index, test_case, TestOutcome.SUCCESS, None, verdict.stdout)

        return self._build_result(index, test_case, TestOutcome.ERROR, MISMATCH_MESSAGE, verdict.stdout, details)

    async def await_verdict(self, code: str, language_id: int, test_case: TestCase) -> JudgeVerdict:
        """Dispatch one case and poll it to a terminal verdict.

        Raises TransportError when the judge fails and EvaluationTimeoutError
        when the polling budget runs out.
        """
        token = await self.judge.dispatch(code, language_id, test_case.input, test_case.expected_output)
        outcome = await poll_until_terminal(
            self.judge,
            token,
            interval=self.poll_interval,
            max_attempts=self.max_attempts,
            sleep=self._sleep,
        )
        if not isinstance(outcome, Terminal):
            raise EvaluationTimeoutError(f"No terminal verdict for {token} after {outcome.attempts} polls")
        return outcome.verdict

    def _build_result(
        self,
        index: int,
        test_case: TestCase,
        outcome: TestOutcome,
        message: Optional[str],
        output: Optional[str] = None,
        details: Optional[str] = None,
    ) -> TestResult:
        visible = test_case.visible
        return TestResult(
            index=index,
            outcome=outcome,
            points=test_case.points if outcome is TestOutcome.SUCCESS else 0,
            max_points=test_case.points,
            visible=visible,
            message=message,
            input=test_case.input if visible else None,
            expected=test_case.expected_output if visible else None,
            output=output if visible else None,
            details=details if visible else None,
        )


def evaluate_mcq(question: Question, option_id: Optional[str]) -> TestResult:
    """Score a multiple-choice answer as a single result worth the question's points."""
    if not option_id:
        raise ValidationError("Please select an option before submitting")
    option = question.get_option(option_id)
    if option is None:
        raise ValidationError(f"Option {option_id} does not belong to question {question.id}")

    if option.is_correct:
        return TestResult(
            index=1,
            outcome=TestOutcome.SUCCESS,
            points=question.points,
            max_points=question.points,
            visible=False,
        )
    return TestResult(
        index=1,
        outcome=TestOutcome.ERROR,
        points=0,
        max_points=question.points,
        visible=False,
        message="Incorrect answer.",
    )

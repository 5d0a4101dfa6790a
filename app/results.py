from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional
import uuid


class TestOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class EvaluationMode(str, Enum):
    RUN = "run"
    SUBMIT = "submit"


@dataclass(frozen=True)
class TestResult:
    """Outcome of one test case. Literal input/expected/output only for visible cases."""

    index: int
    outcome: TestOutcome
    points: int
    max_points: int
    visible: bool
    message: Optional[str] = None
    input: Optional[str] = None
    expected: Optional[str] = None
    output: Optional[str] = None
    details: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.outcome is TestOutcome.SUCCESS


@dataclass(frozen=True)
class Submission:
    """One authoritative evaluation attempt for a question. Never mutated once built."""

    question_id: int
    code: str
    language_id: Optional[int]
    results: List[TestResult]
    submitted_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

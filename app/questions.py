"""
Domain model for contest questions.

Questions are read-only during a session: they are loaded once from the
repository and only referenced by id from submissions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class QuestionType(str, Enum):
    CODING = "coding"
    MCQ = "mcq"


class ContestType(str, Enum):
    ASSESSMENT = "assessment"
    PRACTICE = "practice"


LANGUAGES: Dict[int, str] = {
    50: "C",
    54: "C++",
    62: "Java",
    63: "JavaScript",
    71: "Python",
}

STARTER_TEMPLATES: Dict[int, str] = {
    50: "#include <stdio.h>\n\nint main() {\n    // Your code here\n    return 0;\n}\n",
    54: "#include <iostream>\nusing namespace std;\n\nint main() {\n    // Your code here\n    return 0;\n}\n",
    62: "public class Main {\n    public static void main(String[] args) {\n        // Your code here\n    }\n}\n",
    63: "// Your code here\n",
    71: "# Your code here\n",
}


@dataclass(frozen=True)
class TestCase:
    input: str
    expected_output: str
    points: int = 0
    visible: bool = False

    def __post_init__(self):
        if self.points < 0:
            raise ValueError("Test case points must be non-negative")


@dataclass(frozen=True)
class Example:
    """Display-only sample shown with the question."""
    input: str
    output: str
    explanation: Optional[str] = None


@dataclass(frozen=True)
class McqOption:
    id: str
    text: str
    is_correct: bool = False


@dataclass(frozen=True)
class Question:
    id: int
    title: str
    description: str
    type: QuestionType
    examples: Tuple[Example, ...] = ()
    constraints: Tuple[str, ...] = ()
    test_cases: Tuple[TestCase, ...] = ()
    options: Tuple[McqOption, ...] = ()
    points: int = 0
    templates: Dict[int, str] = field(default_factory=dict)

    def __post_init__(self):
        if self.type is QuestionType.CODING and self.options:
            raise ValueError(f"Coding question {self.id} cannot carry MCQ options")
        if self.type is QuestionType.MCQ and self.test_cases:
            raise ValueError(f"MCQ question {self.id} cannot carry test cases")

    @property
    def is_mcq(self) -> bool:
        return self.type is QuestionType.MCQ

    @property
    def visible_test_cases(self) -> List[TestCase]:
        return [tc for tc in self.test_cases if tc.visible]

    def get_option(self, option_id: str) -> Optional[McqOption]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def starter_code(self, language_id: int) -> str:
        if language_id in self.templates:
            return self.templates[language_id]
        return STARTER_TEMPLATES.get(language_id, "")


@dataclass(frozen=True)
class ContestInfo:
    id: int
    name: str
    contest_code: str
    type: ContestType = ContestType.ASSESSMENT
    duration_minutes: int = 60

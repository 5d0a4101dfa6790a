from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Dict, List, Optional

from questions import ContestType, QuestionType


class ExamplePayload(BaseModel):
    input: str
    output: str
    explanation: Optional[str] = None


class TestCasePayload(BaseModel):
    input: str = ""
    expected_output: str
    points: int = Field(default=0, ge=0)
    visible: bool = False


class OptionIn(BaseModel):
    text: str
    is_correct: bool = False


class QuestionIn(BaseModel):
    title: str
    description: str = ""
    type: QuestionType = QuestionType.CODING
    examples: List[ExamplePayload] = []
    constraints: List[str] = []
    test_cases: List[TestCasePayload] = []
    options: List[OptionIn] = []
    points: int = Field(default=0, ge=0)
    image_url: Optional[str] = None
    templates: Dict[int, str] = {}

    @model_validator(mode="after")
    def validate_shape(self):
        if self.type is QuestionType.CODING:
            if self.options:
                raise ValueError("Coding questions cannot have answer options")
        else:
            if self.test_cases:
                raise ValueError("MCQ questions cannot have test cases")
            if not any(option.is_correct for option in self.options):
                raise ValueError("MCQ questions need at least one correct option")
        return self


class ContestIn(BaseModel):
    name: str
    contest_code: str
    description: Optional[str] = None
    type: ContestType = ContestType.ASSESSMENT
    duration_minutes: int = Field(default=60, gt=0)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    questions: List[QuestionIn]


class SessionStartIn(BaseModel):
    participant_key: str


class SessionStartOut(BaseModel):
    session_id: str
    session_token: str
    contest_id: int
    contest_type: ContestType
    state: str
    end_time: Optional[datetime] = None


class SessionStatusOut(BaseModel):
    session_id: str
    state: str
    remaining_seconds: Optional[int] = None
    remaining_display: Optional[str] = None
    fullscreen_exits: int
    warning_active: bool
    grace_deadline: Optional[datetime] = None
    submitted_question_ids: List[int]


class OptionOut(BaseModel):
    id: str
    text: str


class QuestionOut(BaseModel):
    id: int
    title: str
    description: str
    type: QuestionType
    examples: List[ExamplePayload]
    constraints: List[str]
    visible_test_cases: List[TestCasePayload]
    options: List[OptionOut]
    max_score: int


class StarterCodeOut(BaseModel):
    question_id: int
    language_id: int
    code: str


class CodeIn(BaseModel):
    code: str
    language_id: int


class SubmitIn(BaseModel):
    code: str = ""
    language_id: Optional[int] = None
    option_id: Optional[str] = None


class CodeChangeIn(BaseModel):
    question_id: int
    code: str
    language_id: Optional[int] = None


class TestResultOut(BaseModel):
    index: int
    status: str
    points: int
    max_points: int
    visible: bool
    message: Optional[str] = None
    input: Optional[str] = None
    expected: Optional[str] = None
    output: Optional[str] = None
    details: Optional[str] = None


class RunOut(BaseModel):
    question_id: int
    results: List[TestResultOut]


class SubmissionOut(BaseModel):
    submission_id: str
    question_id: int
    score: int
    max_score: int
    submitted_at: datetime
    results: List[TestResultOut]


class ProgressOut(BaseModel):
    code: str
    language_id: Optional[int] = None
    last_updated: Optional[datetime] = None


class FullscreenIn(BaseModel):
    is_fullscreen: bool


class IntegrityOut(BaseModel):
    state: str
    fullscreen_exits: int
    warning: Optional[str] = None
    grace_deadline: Optional[datetime] = None


class QuestionScoreOut(BaseModel):
    question_id: int
    title: str
    submitted: bool
    score: int
    max_score: int


class ContestSummaryOut(BaseModel):
    session_id: str
    contest_id: int
    participant_key: str
    state: str
    reason: str
    total_score: int
    max_score: int
    cheating_detected: bool
    persisted: bool
    result_id: Optional[str] = None
    warning: Optional[str] = None
    questions: List[QuestionScoreOut]

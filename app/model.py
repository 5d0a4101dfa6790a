from datetime import datetime
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    Enum as EnumType,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from questions import ContestType, QuestionType

Base = declarative_base()


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Contest(Base):
    __tablename__ = "contest"
    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    contest_code = Column(String, unique=True, index=True, nullable=False)
    description = Column(String)
    type = Column(EnumType(ContestType), default=ContestType.ASSESSMENT, nullable=False)
    duration_mins = Column(Integer, default=60, nullable=False)
    start_at = Column(DateTime)
    end_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    questions = relationship("ContestQuestion", back_populates="contest", order_by="ContestQuestion.id")
    results = relationship("ContestResult", back_populates="contest")


class ContestQuestion(Base):
    __tablename__ = "question"
    id = Column(Integer, primary_key=True)
    contest_id = Column(Integer, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    question_type = Column(EnumType(QuestionType), default=QuestionType.CODING, nullable=False)
    # MCQ only; coding questions score through their test cases
    points = Column(Integer, default=0, nullable=False)
    image_url = Column(String)

    contest = relationship("Contest", back_populates="questions")
    examples = relationship("QuestionExample", back_populates="question", order_by="QuestionExample.id")
    constraints = relationship("QuestionConstraint", back_populates="question", order_by="QuestionConstraint.id")
    test_cases = relationship("QuestionTestCase", back_populates="question", order_by="QuestionTestCase.id")
    options = relationship("AnswerOption", back_populates="question", order_by="AnswerOption.id")
    templates = relationship("LanguageTemplate", back_populates="question")


class QuestionExample(Base):
    __tablename__ = "example"
    id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("question.id", ondelete="CASCADE"), nullable=False)
    input = Column(Text, nullable=False)
    output = Column(Text, nullable=False)
    explanation = Column(Text)

    question = relationship("ContestQuestion", back_populates="examples")


class QuestionConstraint(Base):
    __tablename__ = "question_constraint"
    id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("question.id", ondelete="CASCADE"), nullable=False)
    description = Column(Text, nullable=False)

    question = relationship("ContestQuestion", back_populates="constraints")


class QuestionTestCase(Base):
    __tablename__ = "test_case"
    id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("question.id", ondelete="CASCADE"), nullable=False)
    input = Column(Text, nullable=False, default="")
    expected_output = Column(Text, nullable=False)
    points = Column(Integer, default=0, nullable=False)
    is_visible = Column(Boolean, default=False, nullable=False)

    question = relationship("ContestQuestion", back_populates="test_cases")


class AnswerOption(Base):
    __tablename__ = "answer_option"
    id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("question.id", ondelete="CASCADE"), nullable=False)
    option_text = Column(String, nullable=False)
    is_correct = Column(Boolean, default=False, nullable=False)

    question = relationship("ContestQuestion", back_populates="options")


class LanguageTemplate(Base):
    __tablename__ = "language_template"
    id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("question.id", ondelete="CASCADE"), nullable=False)
    language_id = Column(Integer, nullable=False)
    template = Column(Text, nullable=False)

    question = relationship("ContestQuestion", back_populates="templates")
    __table_args__ = (UniqueConstraint("question_id", "language_id", name="uq_question_language"),)


class ContestResult(Base):
    __tablename__ = "contest_result"
    id = Column(String, primary_key=True, default=_new_uuid)
    contest_id = Column(Integer, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False)
    participant_key = Column(String, index=True, nullable=False)
    score = Column(Integer, nullable=False)
    cheating_detected = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    contest = relationship("Contest", back_populates="results")
    submissions = relationship("QuestionSubmission", back_populates="result")


class QuestionSubmission(Base):
    __tablename__ = "submission"
    id = Column(String, primary_key=True, default=_new_uuid)
    result_id = Column(String, ForeignKey("contest_result.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(Integer, ForeignKey("question.id", ondelete="CASCADE"), nullable=False)
    language_id = Column(Integer)
    # source code, or the selected option id for MCQ
    code = Column(Text, nullable=False)
    score = Column(Integer, nullable=False)
    submitted_at = Column(DateTime, default=datetime.now, nullable=False)

    result = relationship("ContestResult", back_populates="submissions")


class Progress(Base):
    __tablename__ = "progress"
    id = Column(Integer, primary_key=True)
    contest_id = Column(Integer, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False)
    participant_key = Column(String, nullable=False)
    user_code = Column(Text, nullable=False, default="")
    language_id = Column(Integer)
    last_updated = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    __table_args__ = (UniqueConstraint("contest_id", "participant_key", name="uq_contest_participant"),)

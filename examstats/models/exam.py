"""
Input records consumed by the analysis engine.

These mirror the rows handed over by the data-access layer: canonical
questions, exam variants with their (possibly malformed) metadata blobs,
raw graded exam results, and the per-student responses built from them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Tuple
import enum

TRUE_FALSE_OPTIONS: Tuple[str, str] = ("True", "False")
DEFAULT_VARIANT_CODE = "default"
MISSING_STUDENT_ID = "null"


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"


@dataclass(frozen=True)
class Question:
    """Canonical question snapshot; immutable once the exam is published."""
    id: str
    text: str
    question_type: QuestionType = QuestionType.MULTIPLE_CHOICE
    correct_answer: str = ""
    options: Tuple[str, ...] = ()
    points: float = 1.0


@dataclass(frozen=True)
class ExamQuestion:
    """A canonical question as assigned to one exam, in exam order."""
    question: Question
    points: Optional[float] = None  # Exam-specific override

    @property
    def effective_points(self) -> float:
        if self.points is not None and self.points > 0:
            return float(self.points)
        return float(self.question.points or 1.0)


@dataclass(frozen=True)
class ExamVariant:
    """
    One shuffled presentation of an exam as stored upstream.

    ``question_order``, ``answer_order`` and ``answer_key`` are opaque blobs:
    JSON strings, already decoded lists/dicts, or None.
    """
    id: str
    exam_id: str
    variant_code: str
    generation_id: Optional[str] = None
    question_order: Any = None
    answer_order: Any = None
    answer_key: Any = None
    exam_title: Optional[str] = None


@dataclass(frozen=True)
class QuestionResponse:
    question_id: str
    student_answer: str
    is_correct: bool
    points: float
    max_points: float = 1.0
    response_time: Optional[float] = None  # seconds

    @property
    def is_omitted(self) -> bool:
        return self.student_answer is None or str(self.student_answer).strip() == ""


@dataclass(frozen=True)
class StudentResponse:
    """One graded attempt; rebuilt from source data on every analysis."""
    student_id: str
    variant_code: str
    question_responses: Tuple[QuestionResponse, ...]
    total_score: float
    max_possible_score: float
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_time: Optional[int] = None  # minutes
    display_student_id: Optional[str] = None
    name: Optional[str] = None

    @property
    def label(self) -> str:
        """Human-readable key used in integrity matrices."""
        display = self.display_student_id or self.name or self.student_id
        return f"{display} ({self.variant_code})"

    def response_for(self, question_id: str) -> Optional[QuestionResponse]:
        for qr in self.question_responses:
            if qr.question_id == question_id:
                return qr
        return None


# ========== Raw upstream rows ==========

@dataclass(frozen=True)
class RawStudent:
    id: str
    name: Optional[str] = None
    student_id: Optional[str] = None  # Displayable institution id


@dataclass(frozen=True)
class RawStudentAnswer:
    question_id: str
    student_answer: str
    is_correct: bool
    points: float


@dataclass(frozen=True)
class RawExamResult:
    id: str
    exam_id: str
    variant_code: Optional[str]
    score: float
    total_points: float
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    student: Optional[RawStudent] = None
    student_answers: List[RawStudentAnswer] = field(default_factory=list)

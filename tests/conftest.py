import json
from datetime import datetime, timedelta

import pytest

from examstats.models.exam import (
    ExamQuestion,
    ExamVariant,
    Question,
    QuestionResponse,
    QuestionType,
    RawExamResult,
    RawStudent,
    RawStudentAnswer,
    StudentResponse,
)
from examstats.services.normalizer import normalize_variants

STARTED = datetime(2024, 5, 1, 9, 0, 0)

CAPITALS = ("Paris", "London", "Berlin", "Madrid")


@pytest.fixture
def exam_questions():
    return [
        ExamQuestion(Question(
            id="q1",
            text="Capital of France?",
            question_type=QuestionType.MULTIPLE_CHOICE,
            correct_answer="Paris",
            options=CAPITALS,
        )),
        ExamQuestion(Question(
            id="q2",
            text="The sky is blue.",
            question_type=QuestionType.TRUE_FALSE,
            correct_answer="True",
        ), points=2.0),
    ]


@pytest.fixture
def variant_a():
    return ExamVariant(
        id="va", exam_id="e1", variant_code="A", generation_id="g1",
        question_order="[0, 1]", answer_order="{}", answer_key=None,
    )


@pytest.fixture
def variant_b():
    # Questions reversed; q1 options reversed so Paris sits at variant position 3 ("D")
    return ExamVariant(
        id="vb", exam_id="e1", variant_code="B", generation_id="g1",
        question_order="[1, 0]",
        answer_order=json.dumps({"q1": [3, 2, 1, 0]}),
        answer_key=json.dumps([
            {"questionId": "q2", "questionNumber": 1, "correctAnswer": "A", "originalAnswer": "True"},
            {"questionId": "q1", "questionNumber": 2, "correctAnswer": "D"},
        ]),
    )


@pytest.fixture
def make_response():
    """Factory for graded attempts; answers is {question_id: (answer, is_correct, points)}."""
    def _make(student_id, variant_code, answers, completed=True, max_points=None):
        max_points = max_points or {}
        qrs = tuple(
            QuestionResponse(
                question_id=qid,
                student_answer=answer,
                is_correct=correct,
                points=points,
                max_points=max_points.get(qid, 1.0),
            )
            for qid, (answer, correct, points) in answers.items()
        )
        return StudentResponse(
            student_id=student_id,
            variant_code=variant_code,
            question_responses=qrs,
            total_score=sum(qr.points for qr in qrs),
            max_possible_score=float(sum(max_points.get(qr.question_id, 1.0) for qr in qrs)),
            started_at=STARTED,
            completed_at=STARTED + timedelta(minutes=30) if completed else None,
            completion_time=30 if completed else None,
            display_student_id=f"S-{student_id}",
        )
    return _make


@pytest.fixture
def make_raw_result():
    def _make(result_id, variant_code, student=True, minutes=25, answers=()):
        return RawExamResult(
            id=result_id,
            exam_id="e1",
            variant_code=variant_code,
            score=float(sum(a[2] for a in answers)),
            total_points=3.0,
            created_at=STARTED,
            updated_at=STARTED + timedelta(minutes=minutes),
            student=RawStudent(id=f"stu-{result_id}", name=f"Student {result_id}", student_id=f"N{result_id}")
            if student else None,
            student_answers=[RawStudentAnswer(qid, ans, ok, pts) for qid, ans, ok, pts in
                             ((a[0], a[1], a[2] > 0, a[2]) for a in answers)],
        )
    return _make


@pytest.fixture
def normalized_variants(exam_questions, variant_a, variant_b):
    return normalize_variants(exam_questions, [variant_a, variant_b])


@pytest.fixture
def cohort_responses(make_response):
    """Six students across variants A and B, answering with variant letters."""
    points = {"q2": 2.0}
    return [
        make_response("s1", "A", {"q1": ("A", True, 1.0), "q2": ("A", True, 2.0)}, max_points=points),
        make_response("s2", "A", {"q1": ("B", False, 0.0), "q2": ("A", True, 2.0)}, max_points=points),
        make_response("s3", "A", {"q1": ("C", False, 0.0), "q2": ("B", False, 0.0)}, max_points=points),
        make_response("s4", "B", {"q1": ("D", True, 1.0), "q2": ("A", True, 2.0)}, max_points=points),
        make_response("s5", "B", {"q1": ("A", False, 0.0), "q2": ("B", False, 0.0)}, max_points=points),
        make_response("s6", "B", {"q1": ("D", True, 1.0), "q2": ("", False, 0.0)}, max_points=points),
    ]

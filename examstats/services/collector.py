"""
Response collection: turn raw graded exam results into per-student
response records, optionally scoped to one generation of variants.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional
import logging
import math

from ..data.source import ExamDataSource
from ..models.exam import (
    DEFAULT_VARIANT_CODE,
    MISSING_STUDENT_ID,
    ExamQuestion,
    QuestionResponse,
    RawExamResult,
    StudentResponse,
)
from ..models.variant import NormalizedVariant
from .normalizer import normalize_variants

logger = logging.getLogger(__name__)


@dataclass
class ExamData:
    """Everything one analysis run needs, fetched once."""
    exam_id: str
    exam_title: str
    questions: List[ExamQuestion]
    variants: List[NormalizedVariant]
    responses: List[StudentResponse]
    generation_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def completion_minutes(started: Optional[datetime], finished: Optional[datetime]) -> Optional[int]:
    """
    Whole minutes between two timestamps, halves rounded up; None when
    missing or not positive.
    """
    if started is None or finished is None:
        return None
    minutes = int(math.floor((finished - started).total_seconds() / 60 + 0.5))
    return minutes if minutes > 0 else None


def transform_results(
    results: Iterable[RawExamResult],
    points_by_question: Optional[Dict[str, float]] = None,
) -> List[StudentResponse]:
    points_by_question = points_by_question or {}
    responses = []
    for r in results:
        student = r.student
        answers = tuple(
            QuestionResponse(
                question_id=a.question_id,
                student_answer=a.student_answer,
                is_correct=bool(a.is_correct),
                points=float(a.points or 0.0),
                max_points=float(points_by_question.get(a.question_id, 1.0)),
            )
            for a in r.student_answers
        )
        responses.append(StudentResponse(
            student_id=student.id if student else MISSING_STUDENT_ID,
            display_student_id=student.student_id if student else None,
            name=student.name if student else None,
            variant_code=r.variant_code or DEFAULT_VARIANT_CODE,
            question_responses=answers,
            total_score=float(r.score or 0.0),
            max_possible_score=float(r.total_points or 0.0),
            started_at=r.created_at,
            completed_at=r.updated_at,
            completion_time=completion_minutes(r.created_at, r.updated_at),
        ))
    return responses


def fetch_results(
    source: ExamDataSource,
    exam_id: str,
    generation_id: Optional[str] = None,
) -> List[RawExamResult]:
    """Raw results for an exam, limited to a generation's variant codes when given."""
    if generation_id is None:
        return source.fetch_results(exam_id)

    codes = source.fetch_generation_variant_codes(generation_id)
    if not codes:
        logger.info(f"Generation {generation_id} has no variants; nothing to collect")
        return []
    return source.fetch_results(exam_id, variant_codes=list(codes))


def collect_student_responses(
    source: ExamDataSource,
    exam_id: str,
    generation_id: Optional[str] = None,
    points_by_question: Optional[Dict[str, float]] = None,
) -> List[StudentResponse]:
    results = fetch_results(source, exam_id, generation_id)
    return transform_results(results, points_by_question)


def collect_exam_data(
    source: ExamDataSource,
    exam_id: str,
    generation_id: Optional[str] = None,
    max_workers: int = 4,
) -> ExamData:
    """
    Fetch title, questions, variants and results for one exam.

    The fetches are independent and go through a small thread pool; any
    data-source exception propagates to the caller unchanged.
    """
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="examstats-fetch") as executor:
        title_future = executor.submit(source.fetch_exam_title, exam_id)
        questions_future = executor.submit(source.fetch_exam_questions, exam_id)
        variants_future = executor.submit(source.fetch_variants, exam_id, generation_id)
        results_future = executor.submit(fetch_results, source, exam_id, generation_id)

        title = title_future.result()
        questions = questions_future.result()
        raw_variants = variants_future.result()
        raw_results = results_future.result()

    variants = normalize_variants(questions, raw_variants)
    points = {eq.question.id: eq.effective_points for eq in questions}
    responses = transform_results(raw_results, points)

    warnings = [w for v in variants for w in v.warnings]
    logger.info(
        f"Collected exam {exam_id}: {len(questions)} questions, "
        f"{len(variants)} variants, {len(responses)} responses"
    )
    return ExamData(
        exam_id=exam_id,
        exam_title=title or "",
        questions=questions,
        variants=variants,
        responses=responses,
        generation_id=generation_id,
        warnings=warnings,
    )

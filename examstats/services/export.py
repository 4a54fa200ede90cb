"""
Tabular views of analysis results for external CSV/DOCX renderers.
"""
from typing import Dict

import pandas as pd

from ..models.analysis import BiPointAnalysisResult

QUESTION_COLUMNS = [
    "question_number",
    "question_id",
    "question_text",
    "correct_answer",
    "total_responses",
    "correct_responses",
    "difficulty_index",
    "discrimination_index",
    "point_biserial",
    "item_reliability",
    "is_significant",
    "p_value",
    "omitted_responses",
    "warnings",
]

RESPONSE_COLUMNS = [
    "student_id",
    "display_student_id",
    "name",
    "variant_code",
    "question_id",
    "student_answer",
    "is_correct",
    "points",
    "max_points",
    "total_score",
]


def question_results_frame(result: BiPointAnalysisResult) -> pd.DataFrame:
    """One row per analyzed question."""
    rows = []
    for qr in result.question_results:
        sig = qr.statistical_significance
        distractors = qr.distractor_analysis
        rows.append({
            "question_number": qr.question_number,
            "question_id": qr.question_id,
            "question_text": qr.question_text,
            "correct_answer": qr.correct_answer,
            "total_responses": qr.total_responses,
            "correct_responses": qr.correct_responses,
            "difficulty_index": qr.difficulty_index,
            "discrimination_index": qr.discrimination_index,
            "point_biserial": qr.point_biserial,
            "item_reliability": qr.reliability_metrics.cronbach_alpha if qr.reliability_metrics else None,
            "is_significant": sig.is_significant,
            "p_value": sig.p_value,
            "omitted_responses": distractors.omitted_responses if distractors else None,
            "warnings": "; ".join(sig.warnings),
        })
    return pd.DataFrame(rows, columns=QUESTION_COLUMNS)


def student_responses_frame(result: BiPointAnalysisResult) -> pd.DataFrame:
    """One row per student answer, in canonical option identity."""
    rows = []
    for student in result.metadata.student_responses:
        for qr in student.question_responses:
            rows.append({
                "student_id": student.student_id,
                "display_student_id": student.display_student_id,
                "name": student.name,
                "variant_code": student.variant_code,
                "question_id": qr.question_id,
                "student_answer": qr.student_answer,
                "is_correct": qr.is_correct,
                "points": qr.points,
                "max_points": qr.max_points,
                "total_score": student.total_score,
            })
    return pd.DataFrame(rows, columns=RESPONSE_COLUMNS)


def similarity_frame(matrix: Dict[str, Dict[str, float]]) -> pd.DataFrame:
    """Square frame with identical row and column labels."""
    labels = list(matrix)
    return pd.DataFrame(
        [[matrix[a].get(b, 0.0) for b in labels] for a in labels],
        index=labels,
        columns=labels,
        dtype=float,
    )

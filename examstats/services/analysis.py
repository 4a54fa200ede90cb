"""
Exam-wide analysis entry point.
"""
from typing import Optional, Sequence
import logging

from ..core.exceptions import NoResponsesError
from ..models.analysis import AnalysisConfig, BiPointAnalysisResult
from ..models.exam import StudentResponse
from ..models.variant import NormalizedVariant
from .item_statistics import UNKNOWN_EXAM_ID, ItemStatisticsEngine
from .normalizer import canonical_questions, unmap_responses
from .variant_analysis import summarize_variants

logger = logging.getLogger(__name__)


def is_complete(response: StudentResponse) -> bool:
    return response.completed_at is not None and len(response.question_responses) > 0


def analyze_exam(
    variants: Sequence[NormalizedVariant],
    responses: Sequence[StudentResponse],
    config: Optional[AnalysisConfig] = None,
    exam_title: str = "",
    exam_id: Optional[str] = None,
) -> BiPointAnalysisResult:
    """
    Item analysis across every variant of an exam.

    Raises NoResponsesError when there is nothing to analyze, before or
    after dropping incomplete attempts. The exam id defaults to the first
    variant's.
    """
    config = config or AnalysisConfig()
    responses = list(responses)
    if not responses:
        raise NoResponsesError()

    retained = responses
    if config.exclude_incomplete_data:
        retained = [r for r in responses if is_complete(r)]
        if not retained:
            raise NoResponsesError("No complete student responses found for analysis.")
    excluded = len(responses) - len(retained)

    logger.info(
        f"Analyzing exam '{exam_title}': {len(retained)} responses "
        f"({excluded} excluded), {len(variants)} variants"
    )

    canonical = unmap_responses(retained, variants)
    questions = canonical_questions(variants)
    warnings = [w for v in variants for w in v.warnings]
    total_variants = len(variants) or len({r.variant_code for r in retained})

    if exam_id is None:
        exam_id = variants[0].exam_id if variants else UNKNOWN_EXAM_ID

    engine = ItemStatisticsEngine(config)
    result = engine.run(
        questions,
        canonical,
        exam_title=exam_title,
        exam_id=exam_id,
        total_variants=total_variants,
        total_students=len(responses),
        excluded_students=excluded,
        warnings=warnings,
    )

    if config.include_variant_results:
        result.variant_results = summarize_variants(variants, retained, config)

    logger.info(
        f"Finished exam '{exam_title}': {result.summary.questions_analyzed} questions with data"
    )
    return result

"""
Per-variant item analysis: the same engine, scoped to the students who took
one variant and that variant's own question list.
"""
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from ..models.analysis import AnalysisConfig, BiPointAnalysisResult, VariantAnalysisResult
from ..models.exam import StudentResponse
from ..models.variant import NormalizedVariant
from .item_statistics import ItemStatisticsEngine
from .normalizer import unmap_responses, variants_by_code

logger = logging.getLogger(__name__)


def group_by_variant(responses: Sequence[StudentResponse]) -> Dict[str, List[StudentResponse]]:
    groups: Dict[str, List[StudentResponse]] = OrderedDict()
    for r in responses:
        groups.setdefault(r.variant_code, []).append(r)
    return groups


def _variant_results(
    variants: Sequence[NormalizedVariant],
    responses: Sequence[StudentResponse],
    config: Optional[AnalysisConfig] = None,
    exam_title: str = "",
) -> List[Tuple[str, BiPointAnalysisResult]]:
    config = config or AnalysisConfig()
    engine = ItemStatisticsEngine(config)
    by_code = variants_by_code(variants)
    groups = group_by_variant(unmap_responses(responses, list(by_code.values())))

    results = []
    for code in sorted(groups):
        variant = by_code.get(code)
        if variant is None:
            logger.warning(f"Skipping {len(groups[code])} responses for unknown variant {code}")
            continue
        result = engine.run(
            variant.questions,
            groups[code],
            exam_title=f"{exam_title} - Variant {code}",
            exam_id=variant.exam_id,
            total_variants=1,
            excluded_students=0,
            warnings=variant.warnings,
        )
        results.append((code, result))
    return results


def analyze_by_variant(
    variants: Sequence[NormalizedVariant],
    responses: Sequence[StudentResponse],
    config: Optional[AnalysisConfig] = None,
    exam_title: str = "",
) -> List[BiPointAnalysisResult]:
    """One analysis per variant that has responses, in variant-code order."""
    return [result for _, result in _variant_results(variants, responses, config, exam_title)]


def summarize_variants(
    variants: Sequence[NormalizedVariant],
    responses: Sequence[StudentResponse],
    config: Optional[AnalysisConfig] = None,
) -> List[VariantAnalysisResult]:
    """Compact per-variant figures for embedding in an exam-wide result."""
    summaries = []
    for code, result in _variant_results(variants, responses, config):
        summary = result.summary
        reliability = summary.reliability_metrics
        summaries.append(VariantAnalysisResult(
            variant_code=code,
            student_count=result.metadata.total_students,
            average_score=summary.score_distribution.mean,
            average_difficulty=summary.average_difficulty,
            average_discrimination=summary.average_discrimination,
            cronbach_alpha=reliability.cronbach_alpha if reliability else None,
        ))
    return summaries

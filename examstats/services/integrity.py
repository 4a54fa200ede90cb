"""
Integrity analysis: similarity between students' canonical answers and
between variants' answer keys, to surface answer sharing or leaked keys.
"""
from typing import Dict, List, Optional, Sequence
import logging

import numpy as np

from ..models.analysis import AnalysisConfig, IntegrityResult, SimilarPair
from ..models.exam import StudentResponse
from ..models.variant import NormalizedVariant
from .normalizer import canonical_questions, unmap_responses, variants_by_code

logger = logging.getLogger(__name__)

Matrix = Dict[str, Dict[str, float]]


def _unique_labels(responses: Sequence[StudentResponse]) -> List[str]:
    labels = []
    seen: Dict[str, int] = {}
    for r in responses:
        label = r.label
        count = seen.get(label, 0) + 1
        seen[label] = count
        labels.append(label if count == 1 else f"{label} #{count}")
    return labels


def _to_matrix(labels: Sequence[str], values: np.ndarray) -> Matrix:
    return {
        a: {b: float(values[i, j]) for j, b in enumerate(labels)}
        for i, a in enumerate(labels)
    }


def answer_code_matrix(
    responses: Sequence[StudentResponse],
    question_ids: Sequence[str],
) -> np.ndarray:
    """Students x questions integer codes per distinct answer; 0 means not attempted."""
    column = {qid: j for j, qid in enumerate(question_ids)}
    codes: Dict[str, int] = {}
    matrix = np.zeros((len(responses), len(question_ids)), dtype=np.int64)
    for i, r in enumerate(responses):
        for qr in r.question_responses:
            j = column.get(qr.question_id)
            if j is None or qr.is_omitted:
                continue
            answer = str(qr.student_answer).strip()
            matrix[i, j] = codes.setdefault(answer, len(codes) + 1)
    return matrix


def student_similarity_matrix(
    responses: Sequence[StudentResponse],
    question_ids: Optional[Sequence[str]] = None,
    large_cohort_threshold: int = 500,
) -> Matrix:
    """
    Fraction of questions both students attempted on which they gave the same
    canonical answer. Responses must already be in canonical identity.
    """
    if question_ids is None:
        question_ids = list(dict.fromkeys(
            qr.question_id for r in responses for qr in r.question_responses
        ))

    n = len(responses)
    if n > large_cohort_threshold:
        logger.warning(
            f"Computing pairwise similarity for {n} students "
            f"(above {large_cohort_threshold}); this is quadratic in cohort size"
        )

    codes = answer_code_matrix(responses, question_ids)
    attempted = (codes > 0).astype(np.int64)
    overlap = attempted @ attempted.T
    matches = np.zeros((n, n), dtype=np.int64)
    for j in range(codes.shape[1]):
        col = codes[:, j]
        matches += (col[:, None] == col[None, :]) & (col[:, None] > 0)

    similarity = np.divide(
        matches, overlap,
        out=np.zeros((n, n), dtype=float),
        where=overlap > 0,
    )
    np.fill_diagonal(similarity, 1.0)
    return _to_matrix(_unique_labels(responses), similarity)


def variant_similarity_matrix(variants: Sequence[NormalizedVariant]) -> Matrix:
    """Fraction of canonical questions whose canonical correct answers agree."""
    question_ids = [q.id for q in canonical_questions(variants)]
    codes = [v.variant_code for v in variants]
    n = len(variants)
    values = np.eye(n)
    if not question_ids:
        return _to_matrix(codes, values)
    for i in range(n):
        for j in range(i + 1, n):
            key_a = variants[i].answer_key
            key_b = variants[j].answer_key
            same = sum(
                1 for qid in question_ids
                if qid in key_a and qid in key_b and key_a[qid] == key_b[qid]
            )
            values[i, j] = values[j, i] = same / len(question_ids)
    return _to_matrix(codes, values)


def variant_structure_similarity(a: NormalizedVariant, b: NormalizedVariant) -> float:
    """Mean of question-position agreement and identical-permutation agreement."""
    if a.variant_code == b.variant_code:
        return 1.0

    order_score = 0.0
    if a.question_order and len(a.question_order) == len(b.question_order):
        same = sum(1 for x, y in zip(a.question_order, b.question_order) if x == y)
        order_score = same / len(a.question_order)

    shared = [qid for qid in a.option_mappings if qid in b.option_mappings]
    option_score = 0.0
    if shared:
        same = sum(
            1 for qid in shared
            if a.option_mappings[qid].variant_to_canonical == b.option_mappings[qid].variant_to_canonical
        )
        option_score = same / len(shared)

    return (order_score + option_score) / 2


def variant_structure_matrix(variants: Sequence[NormalizedVariant]) -> Matrix:
    return {
        a.variant_code: {b.variant_code: variant_structure_similarity(a, b) for b in variants}
        for a in variants
    }


def flag_similar_pairs(matrix: Matrix, threshold: float = 0.9) -> List[SimilarPair]:
    """Off-diagonal pairs at or above ``threshold``, each unordered pair once."""
    pairs = []
    labels = list(matrix)
    for i, a in enumerate(labels):
        for b in labels[i + 1:]:
            value = matrix[a].get(b, 0.0)
            if value >= threshold:
                pairs.append(SimilarPair(first=a, second=b, similarity=value))
    pairs.sort(key=lambda p: (-p.similarity, p.first, p.second))
    return pairs


def analyze_integrity(
    variants: Sequence[NormalizedVariant],
    responses: Sequence[StudentResponse],
    config: Optional[AnalysisConfig] = None,
    flag_threshold: Optional[float] = None,
) -> IntegrityResult:
    config = config or AnalysisConfig()
    # Matrices are keyed by variant code, so repeated codes collapse to one row
    variants = list(variants_by_code(variants).values())
    canonical = unmap_responses(responses, variants)
    question_ids = [q.id for q in canonical_questions(variants)]
    if not question_ids:
        question_ids = None

    logger.info(f"Integrity analysis: {len(canonical)} students, {len(variants)} variants")
    students = student_similarity_matrix(canonical, question_ids, config.large_cohort_threshold)

    flagged: List[SimilarPair] = []
    if flag_threshold is not None:
        flagged = flag_similar_pairs(students, flag_threshold)

    return IntegrityResult(
        student_similarity=students,
        variant_similarity=variant_similarity_matrix(variants),
        variant_structure_similarity=variant_structure_matrix(variants),
        flagged_pairs=flagged,
    )

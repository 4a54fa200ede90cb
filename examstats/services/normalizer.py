"""
Variant normalization: re-express shuffled exam variants in canonical
question and option identity.

A stored option permutation maps variant position -> canonical index, i.e.
``permutation[variant_pos] == canonical_idx``. Student answers recorded as
letters are variant positions (A=0) and must go through the variant's
``OptionMapping`` before they can be compared across variants.
"""
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence
import logging
import string

from ..models.exam import (
    TRUE_FALSE_OPTIONS,
    ExamQuestion,
    ExamVariant,
    Question,
    QuestionResponse,
    QuestionType,
    StudentResponse,
)
from ..models.variant import NormalizedVariant, OptionMapping, VariantMetadata

logger = logging.getLogger(__name__)

LETTERS = string.ascii_uppercase


def letter_to_position(answer: Optional[str]) -> Optional[int]:
    """'A' -> 0, 'b' -> 1; None for anything that is not a single letter."""
    if answer is None:
        return None
    answer = answer.strip()
    if len(answer) != 1 or answer.upper() not in LETTERS:
        return None
    return LETTERS.index(answer.upper())


def canonical_options(question: Question) -> List[str]:
    if not question.options and question.question_type == QuestionType.TRUE_FALSE:
        return list(TRUE_FALSE_OPTIONS)
    return list(question.options)


def resolve_question_order(
    metadata: VariantMetadata,
    n_questions: int,
    variant_code: str,
    warnings: List[str],
) -> List[int]:
    """Canonical indices in presented order; original order when absent."""
    if metadata.question_order is None:
        return list(range(n_questions))

    order: List[int] = []
    seen = set()
    for idx in metadata.question_order:
        if idx < 0 or idx >= n_questions:
            msg = f"Variant {variant_code}: question index {idx} out of range (0..{n_questions - 1}); skipped"
            logger.warning(msg)
            warnings.append(msg)
            continue
        if idx in seen:
            msg = f"Variant {variant_code}: duplicate question index {idx}; skipped"
            logger.warning(msg)
            warnings.append(msg)
            continue
        seen.add(idx)
        order.append(idx)
    return order


def build_option_mapping(
    question_id: str,
    options: Sequence[str],
    permutation: Optional[Sequence[int]],
    variant_code: str,
    warnings: List[str],
) -> OptionMapping:
    """Wrap a stored permutation; unusable permutations fall back to identity."""
    if permutation is None:
        return OptionMapping.identity(len(options))
    if len(permutation) != len(options):
        msg = (
            f"Variant {variant_code}: permutation for question {question_id} has "
            f"{len(permutation)} entries for {len(options)} options; treated as unshuffled"
        )
        logger.warning(msg)
        warnings.append(msg)
        return OptionMapping.identity(len(options))
    try:
        return OptionMapping.from_permutation(permutation)
    except ValueError as e:
        msg = f"Variant {variant_code}: invalid permutation for question {question_id} ({e}); treated as unshuffled"
        logger.warning(msg)
        warnings.append(msg)
        return OptionMapping.identity(len(options))


def _canonical_correct_answer(
    metadata: VariantMetadata,
    question: Question,
    options: Sequence[str],
    mapping: OptionMapping,
) -> str:
    entry = metadata.answer_key_for(question.id)
    if entry is None:
        return question.correct_answer
    if entry.original_answer:
        return entry.original_answer
    if entry.correct_answer is not None:
        pos = letter_to_position(entry.correct_answer)
        if pos is not None and pos < len(mapping) and pos < len(options):
            return options[mapping.to_canonical(pos)]
        return entry.correct_answer
    return question.correct_answer


def normalize_variant(exam_questions: Sequence[ExamQuestion], variant: ExamVariant) -> NormalizedVariant:
    """
    Build the canonical view of one variant. Never raises on bad metadata.

    Questions keep their canonical options and correct answer as stored on the
    exam; the variant's presentation lives only in ``option_mappings``, and
    ``answer_key`` is what the variant's own key resolves to canonically.
    """
    metadata, warnings = VariantMetadata.from_blobs(
        variant.question_order,
        variant.answer_order,
        variant.answer_key,
        variant_code=variant.variant_code,
    )

    order = resolve_question_order(metadata, len(exam_questions), variant.variant_code, warnings)

    questions: List[Question] = []
    mappings: Dict[str, OptionMapping] = {}
    answer_key: Dict[str, str] = {}

    for idx in order:
        eq = exam_questions[idx]
        q = eq.question
        options = canonical_options(q)
        mapping = build_option_mapping(
            q.id, options, metadata.option_permutations.get(q.id), variant.variant_code, warnings
        )

        questions.append(replace(
            q,
            options=tuple(options),
            points=eq.effective_points,
        ))
        mappings[q.id] = mapping
        answer_key[q.id] = _canonical_correct_answer(metadata, q, options, mapping)

    return NormalizedVariant(
        variant_id=variant.id,
        exam_id=variant.exam_id,
        variant_code=variant.variant_code,
        generation_id=variant.generation_id,
        questions=questions,
        option_mappings=mappings,
        answer_key=answer_key,
        question_order=order,
        warnings=warnings,
    )


def normalize_variants(
    exam_questions: Sequence[ExamQuestion],
    variants: Iterable[ExamVariant],
) -> List[NormalizedVariant]:
    return [normalize_variant(exam_questions, v) for v in variants]


def resolve_answer(
    answer: Optional[str],
    question: Question,
    mapping: Optional[OptionMapping],
) -> Optional[str]:
    """
    Canonical option text for a student's answer, or None if it cannot be
    resolved. Single letters are variant positions.
    """
    if answer is None or not answer.strip():
        return None
    options = list(question.options)
    pos = letter_to_position(answer)
    if pos is not None and mapping is not None and pos < len(mapping) and pos < len(options):
        return options[mapping.to_canonical(pos)]
    text = answer.strip()
    if text in options:
        return text
    return None


def unmap_response(response: StudentResponse, variant: NormalizedVariant) -> StudentResponse:
    unmapped: List[QuestionResponse] = []
    rejudged = False
    for qr in response.question_responses:
        question = variant.question(qr.question_id)
        if question is None:
            unmapped.append(qr)
            continue
        canonical = resolve_answer(qr.student_answer, question, variant.mapping_for(question.id))
        if canonical is None:
            unmapped.append(qr)
            continue
        rejudged = True
        correct = canonical == variant.answer_key.get(question.id, question.correct_answer)
        unmapped.append(replace(
            qr,
            student_answer=canonical,
            is_correct=correct,
            points=qr.max_points if correct else 0.0,
        ))

    if not rejudged:
        return response
    total = sum(qr.points for qr in unmapped)
    return replace(response, question_responses=tuple(unmapped), total_score=total)


def variants_by_code(variants: Iterable[NormalizedVariant]) -> Dict[str, NormalizedVariant]:
    """Variants keyed by code; on a repeated code the last variant wins."""
    by_code: Dict[str, NormalizedVariant] = {}
    for v in variants:
        if v.variant_code in by_code:
            logger.warning(
                f"Variant code {v.variant_code} is shared by variants "
                f"{by_code[v.variant_code].variant_id} and {v.variant_id}; using {v.variant_id}"
            )
        by_code[v.variant_code] = v
    return by_code


def unmap_responses(
    responses: Iterable[StudentResponse],
    variants: Iterable[NormalizedVariant],
) -> List[StudentResponse]:
    """Re-express every student's answers in canonical option identity."""
    by_code = variants_by_code(variants)
    result = []
    for response in responses:
        variant = by_code.get(response.variant_code)
        if variant is None:
            result.append(response)
            continue
        result.append(unmap_response(response, variant))
    return result


def canonical_questions(variants: Iterable[NormalizedVariant]) -> List[Question]:
    """Canonical question list in exam order, rebuilt from normalized variants."""
    by_index: Dict[int, Question] = {}
    for variant in variants:
        for idx, question in zip(variant.question_order, variant.questions):
            by_index.setdefault(idx, question)
    return [by_index[i] for i in sorted(by_index)]

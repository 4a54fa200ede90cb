"""
Validated variant metadata and the option mapping built from it.

Upstream stores question order, option permutations and the answer key as
loosely typed JSON blobs. ``VariantMetadata.from_blobs`` turns them into
strict values at the boundary; anything malformed becomes "absent" plus a
warning, so the normalizer only ever deals with the absent case.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import json
import logging

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .exam import Question

logger = logging.getLogger(__name__)


class AnswerKeyEntry(BaseModel):
    """One answer key row as generated for a variant."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    question_id: str = Field(alias="questionId")
    question_number: Optional[int] = Field(default=None, alias="questionNumber")
    correct_answer: Optional[str] = Field(default=None, alias="correctAnswer")
    original_answer: Optional[str] = Field(default=None, alias="originalAnswer")


_QUESTION_ORDER = TypeAdapter(List[int])
_PERMUTATIONS = TypeAdapter(Dict[str, List[int]])
_ANSWER_KEY = TypeAdapter(List[AnswerKeyEntry])


def _decode(blob: Any) -> Any:
    if isinstance(blob, (bytes, bytearray)):
        blob = blob.decode("utf-8")
    if isinstance(blob, str):
        return json.loads(blob)
    return blob


class VariantMetadata(BaseModel):
    """Strictly typed form of a variant's stored metadata blobs."""

    question_order: Optional[List[int]] = None
    option_permutations: Dict[str, List[int]] = Field(default_factory=dict)
    answer_key: List[AnswerKeyEntry] = Field(default_factory=list)

    @classmethod
    def from_blobs(
        cls,
        question_order: Any = None,
        answer_order: Any = None,
        answer_key: Any = None,
        variant_code: str = "",
    ) -> Tuple["VariantMetadata", List[str]]:
        """
        Validate the three blobs independently.

        Never raises: a blob that fails to decode or validate is dropped and
        a warning describing it is returned alongside the metadata.
        """
        warnings: List[str] = []
        label = f"variant {variant_code}" if variant_code else "variant"

        order = None
        if question_order is not None:
            try:
                order = _QUESTION_ORDER.validate_python(_decode(question_order))
            except (ValueError, TypeError, ValidationError) as e:
                warnings.append(f"Invalid question order for {label}; using original order ({e.__class__.__name__})")
            else:
                if not order:
                    warnings.append(f"Empty question order for {label}; using original order")
                    order = None

        permutations: Dict[str, List[int]] = {}
        if answer_order is not None:
            try:
                permutations = _PERMUTATIONS.validate_python(_decode(answer_order) or {})
            except (ValueError, TypeError, ValidationError) as e:
                warnings.append(f"Invalid option permutations for {label}; options left unshuffled ({e.__class__.__name__})")

        entries: List[AnswerKeyEntry] = []
        if answer_key is not None:
            try:
                entries = _ANSWER_KEY.validate_python(_decode(answer_key) or [])
            except (ValueError, TypeError, ValidationError) as e:
                warnings.append(f"Invalid answer key for {label}; using canonical answers ({e.__class__.__name__})")

        for w in warnings:
            logger.warning(w)

        return cls(question_order=order, option_permutations=permutations, answer_key=entries), warnings

    def answer_key_for(self, question_id: str) -> Optional[AnswerKeyEntry]:
        for entry in self.answer_key:
            if entry.question_id == question_id:
                return entry
        return None


@dataclass(frozen=True)
class OptionMapping:
    """
    Bidirectional mapping between variant option positions and canonical
    option indices.

    ``variant_to_canonical[pos]`` is the canonical index displayed at variant
    position ``pos``; ``canonical_to_variant`` is its inverse.
    """
    variant_to_canonical: Tuple[int, ...]
    canonical_to_variant: Tuple[int, ...]

    @classmethod
    def from_permutation(cls, permutation: Sequence[int]) -> "OptionMapping":
        perm = tuple(int(i) for i in permutation)
        if sorted(perm) != list(range(len(perm))):
            raise ValueError(f"Not a permutation of 0..{len(perm) - 1}: {list(perm)}")
        inverse = [0] * len(perm)
        for pos, idx in enumerate(perm):
            inverse[idx] = pos
        return cls(perm, tuple(inverse))

    @classmethod
    def identity(cls, size: int) -> "OptionMapping":
        order = tuple(range(size))
        return cls(order, order)

    def __len__(self) -> int:
        return len(self.variant_to_canonical)

    def to_canonical(self, variant_position: int) -> int:
        return self.variant_to_canonical[variant_position]

    def to_variant(self, canonical_index: int) -> int:
        return self.canonical_to_variant[canonical_index]

    def unshuffle(self, variant_options: Sequence[Any]) -> List[Any]:
        """Variant-presented options back into canonical order."""
        return [variant_options[self.to_variant(i)] for i in range(len(self))]

    def shuffle(self, canonical_options: Sequence[Any]) -> List[Any]:
        """Canonical options into the order this variant presents them."""
        return [canonical_options[self.to_canonical(pos)] for pos in range(len(self))]


@dataclass
class NormalizedVariant:
    """A variant re-expressed in canonical question and option identity."""
    variant_id: str
    exam_id: str
    variant_code: str
    generation_id: Optional[str]
    questions: List[Question]
    option_mappings: Dict[str, OptionMapping] = field(default_factory=dict)
    answer_key: Dict[str, str] = field(default_factory=dict)
    question_order: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def mapping_for(self, question_id: str) -> Optional[OptionMapping]:
        return self.option_mappings.get(question_id)

"""
Data-access boundary for the analysis engine.

The core only ever talks to an ``ExamDataSource``; persistence technology
is the caller's business.
"""
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from ..models.exam import ExamQuestion, ExamVariant, RawExamResult


@runtime_checkable
class ExamDataSource(Protocol):
    def fetch_exam_title(self, exam_id: str) -> str: ...

    def fetch_exam_questions(self, exam_id: str) -> List[ExamQuestion]: ...

    def fetch_variants(self, exam_id: str, generation_id: Optional[str] = None) -> List[ExamVariant]: ...

    def fetch_generation_variant_codes(self, generation_id: str) -> List[str]: ...

    def fetch_results(
        self,
        exam_id: str,
        variant_codes: Optional[Sequence[str]] = None,
    ) -> List[RawExamResult]: ...


class InMemoryExamDataSource:
    """List/dict backed source for tests and embedding."""

    def __init__(
        self,
        titles: Optional[Dict[str, str]] = None,
        questions: Optional[Dict[str, List[ExamQuestion]]] = None,
        variants: Iterable[ExamVariant] = (),
        results: Iterable[RawExamResult] = (),
    ):
        self.titles = dict(titles or {})
        self.questions = dict(questions or {})
        self.variants = list(variants)
        self.results = list(results)

    def fetch_exam_title(self, exam_id: str) -> str:
        return self.titles.get(exam_id, "")

    def fetch_exam_questions(self, exam_id: str) -> List[ExamQuestion]:
        return list(self.questions.get(exam_id, []))

    def fetch_variants(self, exam_id: str, generation_id: Optional[str] = None) -> List[ExamVariant]:
        return sorted(
            (
                v for v in self.variants
                if v.exam_id == exam_id and (generation_id is None or v.generation_id == generation_id)
            ),
            key=lambda v: v.variant_code,
        )

    def fetch_generation_variant_codes(self, generation_id: str) -> List[str]:
        return sorted({v.variant_code for v in self.variants if v.generation_id == generation_id})

    def fetch_results(
        self,
        exam_id: str,
        variant_codes: Optional[Sequence[str]] = None,
    ) -> List[RawExamResult]:
        codes = set(variant_codes) if variant_codes is not None else None
        return [
            r for r in self.results
            if r.exam_id == exam_id and (codes is None or r.variant_code in codes)
        ]

"""
Analysis configuration and result records.

Results are plain dataclasses recomputed on every request; ``to_dict`` turns
them into JSON-safe primitives for whatever transport sits on top.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import enum

from ..core.config import Settings, get_settings
from ..core.exceptions import InvalidConfigError
from .exam import StudentResponse

SIGNIFICANCE_TESTS = ("upper_lower", "chance")


def _json_safe(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _dict_factory(items) -> Dict[str, Any]:
    return {k: _json_safe(v) for k, v in items}


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self, dict_factory=_dict_factory)


@dataclass
class AnalysisConfig(_Serializable):
    min_sample_size: int = 10
    confidence_level: float = 0.95
    include_discrimination_index: bool = True
    include_difficulty_index: bool = True
    include_point_biserial: bool = True
    include_distractor_analysis: bool = True
    exclude_incomplete_data: bool = False
    group_fraction: float = 0.27
    significance_test: str = "upper_lower"
    include_variant_results: bool = False
    large_cohort_threshold: int = 500

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not 0 < self.confidence_level < 1:
            raise InvalidConfigError(f"confidence_level must be in (0, 1), got {self.confidence_level}")
        if self.min_sample_size < 0:
            raise InvalidConfigError(f"min_sample_size must be >= 0, got {self.min_sample_size}")
        if not 0 < self.group_fraction <= 0.5:
            raise InvalidConfigError(f"group_fraction must be in (0, 0.5], got {self.group_fraction}")
        if self.significance_test not in SIGNIFICANCE_TESTS:
            raise InvalidConfigError(f"Unknown significance test: {self.significance_test}")
        if self.large_cohort_threshold < 0:
            raise InvalidConfigError(f"large_cohort_threshold must be >= 0, got {self.large_cohort_threshold}")

    @property
    def alpha(self) -> float:
        return 1.0 - self.confidence_level

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides) -> "AnalysisConfig":
        """Build a config from environment-backed settings plus explicit overrides."""
        settings = settings or get_settings()
        values = dict(
            min_sample_size=settings.ANALYSIS_MIN_SAMPLE_SIZE,
            confidence_level=settings.ANALYSIS_CONFIDENCE_LEVEL,
            group_fraction=settings.ANALYSIS_GROUP_FRACTION,
            significance_test=settings.ANALYSIS_SIGNIFICANCE_TEST,
            include_distractor_analysis=settings.ANALYSIS_INCLUDE_DISTRACTORS,
            exclude_incomplete_data=settings.ANALYSIS_EXCLUDE_INCOMPLETE,
            large_cohort_threshold=settings.INTEGRITY_LARGE_COHORT_THRESHOLD,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# ========== Item-level results ==========

@dataclass
class DistractorOption(_Serializable):
    option: str
    frequency: int
    percentage: float
    discrimination: float
    point_biserial: float
    is_correct: bool = False


@dataclass
class DistractorAnalysis(_Serializable):
    correct_option: Optional[DistractorOption]
    distractors: List[DistractorOption] = field(default_factory=list)
    omitted_responses: int = 0
    omitted_percentage: float = 0.0

    @property
    def options(self) -> List[DistractorOption]:
        head = [self.correct_option] if self.correct_option else []
        return head + list(self.distractors)


@dataclass
class ConfidenceInterval(_Serializable):
    lower: float
    upper: float
    level: float


@dataclass
class StatisticalSignificance(_Serializable):
    method: str
    is_significant: bool
    p_value: float
    critical_value: float
    degrees_of_freedom: int
    test_statistic: float
    confidence_interval: Optional[ConfidenceInterval] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class ItemReliability(_Serializable):
    """Single-item reliability: variance share weighted by item-total correlation."""
    cronbach_alpha: float
    standard_error: float
    confidence_interval: ConfidenceInterval


@dataclass
class QuestionAnalysisResult(_Serializable):
    question_id: str
    question_text: str
    question_number: int
    question_type: str
    correct_answer: str
    total_responses: int
    correct_responses: int
    difficulty_index: float
    discrimination_index: float
    point_biserial: float
    distractor_analysis: Optional[DistractorAnalysis]
    statistical_significance: StatisticalSignificance
    reliability_metrics: Optional[ItemReliability] = None


# ========== Exam-level results ==========

@dataclass
class ReliabilityMetrics(_Serializable):
    cronbach_alpha: float
    standard_error_of_measurement: float
    confidence_interval: ConfidenceInterval
    n_items: int
    n_students: int


@dataclass
class ScoreDistribution(_Serializable):
    mean: float
    median: float
    standard_deviation: float
    skewness: Optional[float]
    kurtosis: Optional[float]
    min: float
    max: float
    quartiles: Tuple[float, float, float]


@dataclass
class AnalysisSummary(_Serializable):
    questions_analyzed: int
    average_difficulty: float
    average_discrimination: float
    average_point_biserial: float
    score_distribution: ScoreDistribution
    reliability_metrics: Optional[ReliabilityMetrics] = None


@dataclass
class AnalysisMetadata(_Serializable):
    total_students: int
    total_variants: int
    analysis_date: datetime
    sample_size: int
    excluded_students: int = 0
    student_responses: List[StudentResponse] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class VariantAnalysisResult(_Serializable):
    """Compact per-variant summary embedded in an exam-wide result."""
    variant_code: str
    student_count: int
    average_score: float
    average_difficulty: float
    average_discrimination: float
    cronbach_alpha: Optional[float] = None


@dataclass
class BiPointAnalysisResult(_Serializable):
    exam_id: str
    exam_title: str
    question_results: List[QuestionAnalysisResult]
    summary: AnalysisSummary
    metadata: AnalysisMetadata
    analysis_config: AnalysisConfig
    variant_results: Optional[List[VariantAnalysisResult]] = None

    def question(self, question_id: str) -> Optional[QuestionAnalysisResult]:
        for qr in self.question_results:
            if qr.question_id == question_id:
                return qr
        return None


# ========== Integrity results ==========

@dataclass
class SimilarPair(_Serializable):
    first: str
    second: str
    similarity: float


@dataclass
class IntegrityResult(_Serializable):
    student_similarity: Dict[str, Dict[str, float]]
    variant_similarity: Dict[str, Dict[str, float]]
    variant_structure_similarity: Dict[str, Dict[str, float]] = field(default_factory=dict)
    flagged_pairs: List[SimilarPair] = field(default_factory=list)

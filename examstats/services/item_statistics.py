"""
Classical item analysis for multiple-choice exams.

Difficulty, upper/lower discrimination, point-biserial correlation,
distractor analysis, significance tests and test reliability. The metric
helpers are pure functions over explicit arrays; ``ItemStatisticsEngine``
applies them per question and builds the exam summary.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import math

import numpy as np
from scipy import stats

from ..models.analysis import (
    AnalysisConfig,
    AnalysisMetadata,
    AnalysisSummary,
    BiPointAnalysisResult,
    ConfidenceInterval,
    DistractorAnalysis,
    DistractorOption,
    ItemReliability,
    QuestionAnalysisResult,
    ReliabilityMetrics,
    ScoreDistribution,
    StatisticalSignificance,
)
from ..models.exam import Question, QuestionResponse, StudentResponse

logger = logging.getLogger(__name__)

DEFAULT_GROUP_FRACTION = 0.27  # Kelley's upper/lower 27%
MIN_GROUP_FRACTION = 0.10
MIN_EXPECTED_FREQUENCY = 5

NO_DATA_WARNING = "No data: question received no responses"
UNKNOWN_EXAM_ID = "unknown"


def _finite(value: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else 0.0


def _clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, _finite(value)))


# ========== Pure metric functions ==========

def difficulty_index(correct: int, total: int) -> float:
    """Proportion of responders answering correctly."""
    if total <= 0:
        return 0.0
    return correct / total


def group_size(n: int, fraction: float = DEFAULT_GROUP_FRACTION) -> int:
    min_group = max(2, int(math.floor(n * MIN_GROUP_FRACTION)))
    return min(n, max(min_group, int(math.floor(n * fraction))))


def split_groups(
    scores: Sequence[float],
    fraction: float = DEFAULT_GROUP_FRACTION,
) -> Tuple[List[int], List[int]]:
    """
    Indices of the upper and lower scoring groups.

    Students are ordered by score, highest first, ties keeping input order.
    On very small samples the two groups may overlap.
    """
    n = len(scores)
    if n == 0:
        return [], []
    order = sorted(range(n), key=lambda i: -scores[i])
    g = group_size(n, fraction)
    return order[:g], order[n - g:]


def discrimination_index(
    flags: Sequence[bool],
    scores: Sequence[float],
    fraction: float = DEFAULT_GROUP_FRACTION,
) -> float:
    """Upper-group proportion correct minus lower-group proportion correct."""
    upper, lower = split_groups(scores, fraction)
    if not upper or not lower:
        return 0.0
    flags = np.asarray(flags, dtype=float)
    return _clamp(flags[upper].mean() - flags[lower].mean())


def point_biserial(flags: Sequence[bool], scores: Sequence[float]) -> float:
    """
    r_pb = (M1 - M0) / S * sqrt(p * q), S the population standard deviation.

    Returns 0 for fewer than two observations, an empty group or zero
    score variance.
    """
    x = np.asarray(flags, dtype=bool)
    y = np.asarray(scores, dtype=float)
    n = len(x)
    if n < 2:
        return 0.0
    n1 = int(x.sum())
    n0 = n - n1
    if n1 == 0 or n0 == 0:
        return 0.0
    s = y.std()
    if s == 0:
        return 0.0
    m1 = y[x].mean()
    m0 = y[~x].mean()
    return _clamp((m1 - m0) / s * math.sqrt(n1 * n0 / (n * n)))


@dataclass
class ChiSquareResult:
    method: str
    statistic: float
    p_value: float
    critical_value: float
    degrees_of_freedom: int = 1
    warnings: List[str] = field(default_factory=list)

    @property
    def is_significant(self) -> bool:
        return self.statistic > self.critical_value


def _critical_value(alpha: float, df: int = 1) -> float:
    return float(stats.chi2.ppf(1.0 - alpha, df))


def chi_square_upper_lower(
    upper_flags: Sequence[bool],
    lower_flags: Sequence[bool],
    alpha: float = 0.05,
) -> ChiSquareResult:
    """2x2 test of independence between group membership and correctness."""
    upper = np.asarray(upper_flags, dtype=bool)
    lower = np.asarray(lower_flags, dtype=bool)
    table = np.array([
        [upper.sum(), (~upper).sum()],
        [lower.sum(), (~lower).sum()],
    ], dtype=float)
    critical = _critical_value(alpha)

    if (table.sum(axis=0) == 0).any() or (table.sum(axis=1) == 0).any():
        return ChiSquareResult(
            "upper_lower", 0.0, 1.0, critical,
            warnings=["Degenerate contingency table: a group or outcome is empty"],
        )

    statistic, p_value, dof, expected = stats.chi2_contingency(table, correction=False)
    warnings = []
    if (expected < MIN_EXPECTED_FREQUENCY).any():
        warnings.append(
            f"Expected frequencies below {MIN_EXPECTED_FREQUENCY}; chi-square approximation may be unreliable"
        )
    return ChiSquareResult("upper_lower", _finite(statistic), _finite(p_value), critical, int(dof), warnings)


def chi_square_chance(
    correct: int,
    total: int,
    n_options: int,
    alpha: float = 0.05,
) -> ChiSquareResult:
    """
    Goodness of fit of observed correctness against the guessing rate
    1/n_options. Falls back to the normal approximation of the binomial
    when an expected count is below 5.
    """
    critical = _critical_value(alpha)
    if total <= 0 or n_options < 2:
        return ChiSquareResult(
            "chance", 0.0, 1.0, critical,
            warnings=["Chance test undefined: no responses or fewer than two options"],
        )

    p0 = 1.0 / n_options
    observed = np.array([correct, total - correct], dtype=float)
    expected = np.array([total * p0, total * (1 - p0)])

    if (expected < MIN_EXPECTED_FREQUENCY).any():
        z = (correct - total * p0) / math.sqrt(total * p0 * (1 - p0))
        p_value = 2 * stats.norm.sf(abs(z))
        return ChiSquareResult(
            "chance", _finite(z * z), _finite(p_value), critical,
            warnings=[f"Expected frequencies below {MIN_EXPECTED_FREQUENCY}; binomial z-test used"],
        )

    statistic, p_value = stats.chisquare(observed, expected)
    return ChiSquareResult("chance", _finite(statistic), _finite(p_value), critical)


def proportion_confidence_interval(
    p: float,
    n: int,
    confidence: float = 0.95,
) -> Optional[ConfidenceInterval]:
    """Wald interval for a proportion, clipped to [0, 1]."""
    if n <= 0:
        return None
    z = stats.norm.ppf(1 - (1 - confidence) / 2)
    margin = z * math.sqrt(max(p * (1 - p), 0.0) / n)
    return ConfidenceInterval(
        lower=max(0.0, _finite(p - margin)),
        upper=min(1.0, _finite(p + margin)),
        level=confidence,
    )


def score_distribution(scores: Sequence[float]) -> ScoreDistribution:
    x = np.asarray(scores, dtype=float)
    n = len(x)
    if n == 0:
        return ScoreDistribution(0.0, 0.0, 0.0, None, None, 0.0, 0.0, (0.0, 0.0, 0.0))

    sd = float(x.std())
    skewness = kurtosis = None
    if n >= 3:
        skewness = 0.0 if sd == 0 else _finite(stats.skew(x, bias=False))
    if n >= 4:
        kurtosis = 0.0 if sd == 0 else _finite(stats.kurtosis(x, fisher=True, bias=False))

    q1, q2, q3 = np.percentile(x, [25, 50, 75])
    return ScoreDistribution(
        mean=float(x.mean()),
        median=float(np.median(x)),
        standard_deviation=sd,
        skewness=skewness,
        kurtosis=kurtosis,
        min=float(x.min()),
        max=float(x.max()),
        quartiles=(float(q1), float(q2), float(q3)),
    )


def cronbach_alpha(item_scores: np.ndarray, confidence: float = 0.95) -> Optional[ReliabilityMetrics]:
    """
    Cronbach's alpha over a students x items score matrix (KR-20 for
    dichotomous items), with SEM and Feldt's confidence interval.
    """
    matrix = np.asarray(item_scores, dtype=float)
    if matrix.ndim != 2:
        return None
    n_students, n_items = matrix.shape
    if n_students < 3 or n_items < 2:
        return None

    totals = matrix.sum(axis=1)
    total_var = totals.var(ddof=1)
    if total_var == 0:
        return None
    item_var = matrix.var(axis=0, ddof=1).sum()
    alpha = n_items / (n_items - 1) * (1 - item_var / total_var)

    sem = math.sqrt(total_var) * math.sqrt(max(0.0, 1 - alpha))

    a = 1 - confidence
    df1 = n_students - 1
    df2 = (n_students - 1) * (n_items - 1)
    lower = 1 - (1 - alpha) * stats.f.ppf(1 - a / 2, df1, df2)
    upper = 1 - (1 - alpha) * stats.f.ppf(a / 2, df1, df2)

    return ReliabilityMetrics(
        cronbach_alpha=_finite(alpha),
        standard_error_of_measurement=_finite(sem),
        confidence_interval=ConfidenceInterval(
            lower=_clamp(lower),
            upper=_clamp(upper),
            level=confidence,
        ),
        n_items=n_items,
        n_students=n_students,
    )


def item_reliability(
    item_scores: Sequence[float],
    total_scores: Sequence[float],
    confidence: float = 0.95,
) -> Optional[ItemReliability]:
    """
    (item variance / total variance) * item-total correlation, with
    SEM = sqrt(item variance * (1 - reliability)) and a normal interval
    clipped to [0, 1]. Variances are population variances.

    None for fewer than three students or when either score has no variance.
    """
    x = np.asarray(item_scores, dtype=float)
    y = np.asarray(total_scores, dtype=float)
    if len(x) < 3 or len(x) != len(y):
        return None
    item_var = float(x.var())
    total_var = float(y.var())
    if item_var == 0 or total_var == 0:
        return None

    r = float(np.corrcoef(x, y)[0, 1])
    reliability = _finite(item_var / total_var * r)
    sem = math.sqrt(max(0.0, item_var * (1 - reliability)))
    z = stats.norm.ppf(1 - (1 - confidence) / 2)
    return ItemReliability(
        cronbach_alpha=reliability,
        standard_error=_finite(sem),
        confidence_interval=ConfidenceInterval(
            lower=max(0.0, _finite(reliability - z * sem)),
            upper=min(1.0, _finite(reliability + z * sem)),
            level=confidence,
        ),
    )


# ========== Engine ==========

class ItemStatisticsEngine:
    """Per-question statistics and exam summary for one cohort."""

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()

    def analyze(
        self,
        questions: Sequence[Question],
        responses: Sequence[StudentResponse],
    ) -> List[QuestionAnalysisResult]:
        """One result per question; questions seen only in responses go last."""
        ordered = list(questions)
        known = {q.id for q in ordered}
        for student in responses:
            for qr in student.question_responses:
                if qr.question_id not in known:
                    known.add(qr.question_id)
                    ordered.append(Question(id=qr.question_id, text=""))

        return [
            self.analyze_question(q, number, responses)
            for number, q in enumerate(ordered, start=1)
        ]

    def analyze_question(
        self,
        question: Question,
        number: int,
        responses: Sequence[StudentResponse],
    ) -> QuestionAnalysisResult:
        cfg = self.config
        pairs: List[Tuple[StudentResponse, QuestionResponse]] = []
        for student in responses:
            qr = student.response_for(question.id)
            if qr is not None:
                pairs.append((student, qr))

        total = len(pairs)
        if total == 0:
            return self._empty_result(question, number)

        flags = np.array([qr.is_correct for _, qr in pairs], dtype=bool)
        scores = np.array([s.total_score for s, _ in pairs], dtype=float)
        corrected = np.array([s.total_score - qr.points for s, qr in pairs], dtype=float)
        correct = int(flags.sum())
        upper, lower = split_groups(scores, cfg.group_fraction)

        warnings: List[str] = []
        if total < cfg.min_sample_size:
            warnings.append(
                f"Low sample size: {total} responses (minimum {cfg.min_sample_size} recommended); "
                "results may be unreliable"
            )
        if correct in (0, total):
            warnings.append("No variance in item responses (all correct or all incorrect)")

        difficulty = difficulty_index(correct, total) if cfg.include_difficulty_index else 0.0
        discrimination = 0.0
        if cfg.include_discrimination_index:
            discrimination = discrimination_index(flags, scores, cfg.group_fraction)
        rpb = 0.0
        if cfg.include_point_biserial:
            if total < 2:
                warnings.append("Point-biserial undefined for fewer than two responses")
            elif corrected.std() == 0 and correct not in (0, total):
                warnings.append("Point-biserial undefined: no variance in remaining scores")
            rpb = point_biserial(flags, corrected)

        distractors = None
        if cfg.include_distractor_analysis:
            distractors = self._distractor_analysis(question, pairs, corrected, upper, lower)

        significance = self._significance(question, flags, correct, total, upper, lower)
        significance.warnings = warnings + significance.warnings

        # Whole cohort; students who skipped the question score 0 on it
        item_scores = []
        for student in responses:
            qr = student.response_for(question.id)
            item_scores.append(1.0 if qr is not None and qr.is_correct else 0.0)
        reliability = item_reliability(
            item_scores, [s.total_score for s in responses], cfg.confidence_level
        )

        return QuestionAnalysisResult(
            question_id=question.id,
            question_text=question.text,
            question_number=number,
            question_type=question.question_type.value,
            correct_answer=question.correct_answer,
            total_responses=total,
            correct_responses=correct,
            difficulty_index=_finite(difficulty),
            discrimination_index=_clamp(discrimination),
            point_biserial=_clamp(rpb),
            distractor_analysis=distractors,
            statistical_significance=significance,
            reliability_metrics=reliability,
        )

    def _empty_result(self, question: Question, number: int) -> QuestionAnalysisResult:
        distractors = None
        if self.config.include_distractor_analysis:
            options = [
                DistractorOption(opt, 0, 0.0, 0.0, 0.0, is_correct=opt == question.correct_answer)
                for opt in question.options
            ]
            distractors = DistractorAnalysis(
                correct_option=next((o for o in options if o.is_correct), None),
                distractors=[o for o in options if not o.is_correct],
            )
        return QuestionAnalysisResult(
            question_id=question.id,
            question_text=question.text,
            question_number=number,
            question_type=question.question_type.value,
            correct_answer=question.correct_answer,
            total_responses=0,
            correct_responses=0,
            difficulty_index=0.0,
            discrimination_index=0.0,
            point_biserial=0.0,
            distractor_analysis=distractors,
            statistical_significance=StatisticalSignificance(
                method=self.config.significance_test,
                is_significant=False,
                p_value=1.0,
                critical_value=_critical_value(self.config.alpha),
                degrees_of_freedom=1,
                test_statistic=0.0,
                confidence_interval=None,
                warnings=[NO_DATA_WARNING],
            ),
        )

    def _distractor_analysis(
        self,
        question: Question,
        pairs: Sequence[Tuple[StudentResponse, QuestionResponse]],
        corrected: np.ndarray,
        upper: List[int],
        lower: List[int],
    ) -> DistractorAnalysis:
        cfg = self.config
        total = len(pairs)
        answers = [None if qr.is_omitted else str(qr.student_answer).strip() for _, qr in pairs]

        values = list(question.options)
        for a in answers:
            if a is not None and a not in values:
                values.append(a)

        options: List[DistractorOption] = []
        for value in values:
            selected = np.array([a == value for a in answers], dtype=bool)
            frequency = int(selected.sum())
            disc = 0.0
            if cfg.include_discrimination_index and upper and lower:
                disc = _clamp(selected[upper].mean() - selected[lower].mean())
            rpb = point_biserial(selected, corrected) if cfg.include_point_biserial else 0.0
            options.append(DistractorOption(
                option=value,
                frequency=frequency,
                percentage=frequency / total * 100.0,
                discrimination=disc,
                point_biserial=rpb,
                is_correct=value == question.correct_answer,
            ))

        omitted = sum(1 for a in answers if a is None)
        return DistractorAnalysis(
            correct_option=next((o for o in options if o.is_correct), None),
            distractors=[o for o in options if not o.is_correct],
            omitted_responses=omitted,
            omitted_percentage=omitted / total * 100.0,
        )

    def _significance(
        self,
        question: Question,
        flags: np.ndarray,
        correct: int,
        total: int,
        upper: List[int],
        lower: List[int],
    ) -> StatisticalSignificance:
        cfg = self.config
        if cfg.significance_test == "chance":
            n_options = len(question.options) or 2
            result = chi_square_chance(correct, total, n_options, cfg.alpha)
        else:
            result = chi_square_upper_lower(flags[upper], flags[lower], cfg.alpha)

        return StatisticalSignificance(
            method=result.method,
            is_significant=result.is_significant,
            p_value=result.p_value,
            critical_value=result.critical_value,
            degrees_of_freedom=result.degrees_of_freedom,
            test_statistic=result.statistic,
            confidence_interval=proportion_confidence_interval(
                difficulty_index(correct, total), total, cfg.confidence_level
            ),
            warnings=list(result.warnings),
        )

    # ========== Summary ==========

    def summarize(
        self,
        question_results: Sequence[QuestionAnalysisResult],
        responses: Sequence[StudentResponse],
    ) -> AnalysisSummary:
        answered = [qr for qr in question_results if qr.total_responses > 0]

        def mean_of(attr: str) -> float:
            if not answered:
                return 0.0
            return _finite(np.mean([getattr(qr, attr) for qr in answered]))

        question_ids = [qr.question_id for qr in question_results]
        reliability = cronbach_alpha(
            self.item_score_matrix(question_ids, responses),
            confidence=self.config.confidence_level,
        )

        return AnalysisSummary(
            questions_analyzed=len(answered),
            average_difficulty=mean_of("difficulty_index"),
            average_discrimination=mean_of("discrimination_index"),
            average_point_biserial=mean_of("point_biserial"),
            score_distribution=score_distribution([s.total_score for s in responses]),
            reliability_metrics=reliability,
        )

    @staticmethod
    def item_score_matrix(
        question_ids: Sequence[str],
        responses: Sequence[StudentResponse],
    ) -> np.ndarray:
        """Students x questions matrix of points earned; unanswered counts as 0."""
        column: Dict[str, int] = {qid: j for j, qid in enumerate(question_ids)}
        matrix = np.zeros((len(responses), len(question_ids)), dtype=float)
        for i, student in enumerate(responses):
            for qr in student.question_responses:
                j = column.get(qr.question_id)
                if j is not None:
                    matrix[i, j] = qr.points
        return matrix

    def run(
        self,
        questions: Sequence[Question],
        responses: Sequence[StudentResponse],
        exam_title: str = "",
        exam_id: str = UNKNOWN_EXAM_ID,
        total_variants: int = 1,
        total_students: Optional[int] = None,
        excluded_students: int = 0,
        warnings: Optional[List[str]] = None,
    ) -> BiPointAnalysisResult:
        """Question results, summary and metadata for an already-canonical cohort."""
        question_results = self.analyze(questions, responses)
        summary = self.summarize(question_results, responses)
        logger.debug(f"Analyzed {len(question_results)} questions for {len(responses)} students")
        metadata = AnalysisMetadata(
            total_students=len(responses) if total_students is None else total_students,
            total_variants=total_variants,
            analysis_date=datetime.now(timezone.utc),
            sample_size=len(responses),
            excluded_students=excluded_students,
            student_responses=list(responses),
            warnings=list(warnings or []),
        )
        return BiPointAnalysisResult(
            exam_id=exam_id,
            exam_title=exam_title,
            question_results=question_results,
            summary=summary,
            metadata=metadata,
            analysis_config=self.config,
        )

import json
from dataclasses import replace

import pytest

from examstats.core.exceptions import NoResponsesError
from examstats.models.analysis import AnalysisConfig
from examstats.models.exam import ExamVariant
from examstats.services.analysis import analyze_exam
from examstats.services.normalizer import normalize_variant


def test_no_responses_raises(normalized_variants):
    with pytest.raises(NoResponsesError, match="No student responses found for analysis."):
        analyze_exam(normalized_variants, [])


def test_all_incomplete_raises_when_excluding(normalized_variants, make_response):
    responses = [make_response("s1", "A", {"q1": ("A", True, 1.0)}, completed=False)]
    with pytest.raises(NoResponsesError):
        analyze_exam(normalized_variants, responses, AnalysisConfig(exclude_incomplete_data=True))


def test_exam_analysis_across_variants(normalized_variants, cohort_responses):
    result = analyze_exam(normalized_variants, cohort_responses, exam_title="Geography")

    assert result.exam_title == "Geography"
    assert [q.question_id for q in result.question_results] == ["q1", "q2"]

    q1, q2 = result.question_results
    assert q1.total_responses == 6
    assert q1.correct_responses == 3
    assert q1.difficulty_index == pytest.approx(0.5)
    freq = {o.option: o.frequency for o in q1.distractor_analysis.options}
    assert freq == {"Paris": 3, "London": 1, "Berlin": 1, "Madrid": 1}

    assert q2.correct_responses == 3
    assert q2.distractor_analysis.omitted_responses == 1

    meta = result.metadata
    assert meta.total_students == 6
    assert meta.sample_size == 6
    assert meta.total_variants == 2
    assert meta.excluded_students == 0
    scores = {r.student_id: r.total_score for r in meta.student_responses}
    assert scores == {"s1": 3.0, "s2": 2.0, "s3": 0.0, "s4": 3.0, "s5": 0.0, "s6": 1.0}


def test_incomplete_attempts_are_excluded(normalized_variants, cohort_responses):
    responses = list(cohort_responses)
    responses[0] = replace(responses[0], completed_at=None)
    result = analyze_exam(normalized_variants, responses, AnalysisConfig(exclude_incomplete_data=True))

    assert result.metadata.excluded_students == 1
    assert result.metadata.sample_size == 5
    assert result.question_results[0].total_responses == 5


def test_malformed_variant_does_not_stop_the_analysis(exam_questions, normalized_variants, cohort_responses):
    broken = normalize_variant(
        exam_questions, ExamVariant(id="vc", exam_id="e1", variant_code="C", question_order="not json")
    )
    result = analyze_exam(normalized_variants + [broken], cohort_responses)

    assert result.metadata.total_variants == 3
    assert any("variant C" in w for w in result.metadata.warnings)
    assert len(result.question_results) == 2


def test_analysis_is_deterministic(normalized_variants, cohort_responses):
    first = analyze_exam(normalized_variants, cohort_responses).to_dict()
    second = analyze_exam(normalized_variants, cohort_responses).to_dict()
    first["metadata"].pop("analysis_date")
    second["metadata"].pop("analysis_date")
    assert first == second


def test_result_serializes_to_json(normalized_variants, cohort_responses):
    payload = analyze_exam(normalized_variants, cohort_responses).to_dict()
    text = json.dumps(payload)
    decoded = json.loads(text)
    assert decoded["question_results"][0]["question_id"] == "q1"
    assert isinstance(decoded["metadata"]["analysis_date"], str)
    assert decoded["metadata"]["student_responses"][0]["started_at"].startswith("2024-05-01")


def test_variant_results_are_optional(normalized_variants, cohort_responses):
    plain = analyze_exam(normalized_variants, cohort_responses)
    assert plain.variant_results is None

    detailed = analyze_exam(normalized_variants, cohort_responses, AnalysisConfig(include_variant_results=True))
    codes = [v.variant_code for v in detailed.variant_results]
    assert codes == ["A", "B"]
    assert [v.student_count for v in detailed.variant_results] == [3, 3]
    assert detailed.variant_results[0].average_score == pytest.approx(5 / 3)


def test_result_records_exam_and_config(normalized_variants, cohort_responses):
    config = AnalysisConfig(min_sample_size=3, include_point_biserial=False)
    payload = analyze_exam(normalized_variants, cohort_responses, config).to_dict()

    assert payload["exam_id"] == "e1"
    assert payload["analysis_config"]["min_sample_size"] == 3
    assert payload["analysis_config"]["include_point_biserial"] is False
    assert payload["analysis_config"]["significance_test"] == "upper_lower"


def test_explicit_exam_id_wins_and_missing_variants_fall_back(normalized_variants, cohort_responses):
    assert analyze_exam(normalized_variants, cohort_responses, exam_id="exam-7").exam_id == "exam-7"
    assert analyze_exam([], cohort_responses).exam_id == "unknown"

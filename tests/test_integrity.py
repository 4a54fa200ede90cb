import logging
from dataclasses import replace

import pytest

from examstats.models.analysis import AnalysisConfig
from examstats.services.integrity import (
    analyze_integrity,
    flag_similar_pairs,
    student_similarity_matrix,
    variant_similarity_matrix,
    variant_structure_similarity,
)
from examstats.services.normalizer import normalize_variant


@pytest.fixture
def integrity_responses(make_response):
    return [
        make_response("s1", "A", {"q1": ("A", True, 1.0), "q2": ("B", False, 0.0)}),
        make_response("s2", "B", {"q1": ("D", True, 1.0), "q2": ("B", False, 0.0)}),
        make_response("s3", "A", {"q1": ("B", False, 0.0), "q2": ("", False, 0.0)}),
        make_response("s4", "A", {}),
    ]


def test_identical_canonical_answers_across_variants_are_fully_similar(normalized_variants, integrity_responses):
    result = analyze_integrity(normalized_variants, integrity_responses)
    sim = result.student_similarity

    assert sim["S-s1 (A)"]["S-s2 (B)"] == 1.0
    assert sim["S-s1 (A)"]["S-s3 (A)"] == 0.0
    assert sim["S-s4 (A)"]["S-s1 (A)"] == 0.0


def test_student_matrix_is_symmetric_with_unit_diagonal(normalized_variants, integrity_responses):
    sim = analyze_integrity(normalized_variants, integrity_responses).student_similarity
    labels = list(sim)
    assert len(labels) == 4
    for a in labels:
        assert sim[a][a] == 1.0
        for b in labels:
            assert sim[a][b] == sim[b][a]
            assert 0.0 <= sim[a][b] <= 1.0


def test_partial_overlap_uses_questions_both_attempted(make_response):
    responses = [
        make_response("s1", "A", {"q1": ("x", True, 1.0), "q2": ("y", True, 1.0), "q3": ("z", True, 1.0)}),
        make_response("s2", "A", {"q1": ("x", True, 1.0), "q2": ("w", False, 0.0), "q3": ("", False, 0.0)}),
    ]
    sim = student_similarity_matrix(responses)
    assert sim["S-s1 (A)"]["S-s2 (A)"] == pytest.approx(0.5)


def test_duplicate_labels_stay_distinct(make_response):
    responses = [
        make_response("s1", "A", {"q1": ("x", True, 1.0)}),
        make_response("s1", "A", {"q1": ("y", False, 0.0)}),
    ]
    sim = student_similarity_matrix(responses)
    assert list(sim) == ["S-s1 (A)", "S-s1 (A) #2"]


def test_large_cohort_logs_a_warning(make_response, caplog):
    responses = [make_response(f"s{i}", "A", {"q1": ("x", True, 1.0)}) for i in range(3)]
    with caplog.at_level(logging.WARNING, logger="examstats.services.integrity"):
        student_similarity_matrix(responses, large_cohort_threshold=2)
    assert any("quadratic" in r.getMessage() for r in caplog.records)


def test_variant_similarity_compares_canonical_answer_keys(normalized_variants):
    sim = variant_similarity_matrix(normalized_variants)
    assert sim == {"A": {"A": 1.0, "B": 1.0}, "B": {"A": 1.0, "B": 1.0}}


def test_variant_structure_similarity(normalized_variants):
    a, b = normalized_variants
    # Question order fully differs; q2 shares its (identity) option order, q1 does not
    assert variant_structure_similarity(a, b) == pytest.approx(0.25)
    assert variant_structure_similarity(a, a) == 1.0


def test_flag_similar_pairs():
    matrix = {
        "x": {"x": 1.0, "y": 0.95, "z": 0.2},
        "y": {"x": 0.95, "y": 1.0, "z": 0.91},
        "z": {"x": 0.2, "y": 0.91, "z": 1.0},
    }
    pairs = flag_similar_pairs(matrix, threshold=0.9)
    assert [(p.first, p.second, p.similarity) for p in pairs] == [("x", "y", 0.95), ("y", "z", 0.91)]


def test_analyze_integrity_flags_pairs_when_threshold_given(normalized_variants, integrity_responses):
    result = analyze_integrity(normalized_variants, integrity_responses, AnalysisConfig(), flag_threshold=0.9)
    assert [(p.first, p.second) for p in result.flagged_pairs] == [("S-s1 (A)", "S-s2 (B)")]
    assert result.variant_structure_similarity["A"]["B"] == pytest.approx(0.25)
    assert result.to_dict()["flagged_pairs"][0]["similarity"] == 1.0


def test_repeated_variant_codes_collapse_to_one_row(exam_questions, variant_a, normalized_variants, integrity_responses, caplog):
    duplicate = normalize_variant(exam_questions, replace(variant_a, id="va2", generation_id="g2"))
    with caplog.at_level(logging.WARNING, logger="examstats.services.normalizer"):
        result = analyze_integrity(normalized_variants + [duplicate], integrity_responses)

    assert list(result.variant_similarity) == ["A", "B"]
    assert list(result.variant_structure_similarity) == ["A", "B"]
    assert sum("Variant code A is shared" in r.getMessage() for r in caplog.records) == 1

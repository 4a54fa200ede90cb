from .normalizer import normalize_variant, normalize_variants, unmap_responses
from .collector import ExamData, collect_exam_data, collect_student_responses, transform_results
from .item_statistics import ItemStatisticsEngine
from .variant_analysis import analyze_by_variant, summarize_variants
from .integrity import analyze_integrity, flag_similar_pairs, variant_structure_similarity
from .analysis import analyze_exam

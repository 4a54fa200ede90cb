from .exam import (
    DEFAULT_VARIANT_CODE,
    MISSING_STUDENT_ID,
    TRUE_FALSE_OPTIONS,
    ExamQuestion,
    ExamVariant,
    Question,
    QuestionResponse,
    QuestionType,
    RawExamResult,
    RawStudent,
    RawStudentAnswer,
    StudentResponse,
)
from .variant import AnswerKeyEntry, NormalizedVariant, OptionMapping, VariantMetadata
from .analysis import (
    AnalysisConfig,
    AnalysisMetadata,
    AnalysisSummary,
    BiPointAnalysisResult,
    ConfidenceInterval,
    DistractorAnalysis,
    DistractorOption,
    IntegrityResult,
    ItemReliability,
    QuestionAnalysisResult,
    ReliabilityMetrics,
    ScoreDistribution,
    SimilarPair,
    StatisticalSignificance,
    VariantAnalysisResult,
)

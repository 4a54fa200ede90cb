"""
PostgreSQL-backed exam data source (psycopg2, parameterised SQL).
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple
import json
import logging

import psycopg2
import psycopg2.extras

from ..models.exam import (
    ExamQuestion,
    ExamVariant,
    Question,
    QuestionType,
    RawExamResult,
    RawStudent,
    RawStudentAnswer,
)

logger = logging.getLogger(__name__)

TITLE_SQL = 'SELECT title FROM "Exam" WHERE id=%s'

QUESTIONS_SQL = '''
SELECT q.id, q.text, q.type, q."correctAnswer", q.options, q.points AS question_points,
       eq.points AS exam_points
FROM "ExamQuestion" eq
JOIN "Question" q ON q.id = eq."questionId"
WHERE eq."examId"=%s
ORDER BY eq."order" ASC
'''

VARIANTS_BY_EXAM_SQL = '''
SELECT id, "examId", "variantCode", "generationId", "questionOrder", "answerOrder", "answerKey"
FROM "ExamVariant"
WHERE "examId"=%s
ORDER BY "variantCode" ASC
'''

VARIANTS_BY_GENERATION_SQL = '''
SELECT id, "examId", "variantCode", "generationId", "questionOrder", "answerOrder", "answerKey"
FROM "ExamVariant"
WHERE "generationId"=%s
ORDER BY "variantCode" ASC
'''

GENERATION_CODES_SQL = 'SELECT DISTINCT "variantCode" FROM "ExamVariant" WHERE "generationId"=%s'

RESULTS_SQL = '''
SELECT r.id, r."examId", r."variantCode", r.score, r."totalPoints", r."createdAt", r."updatedAt",
       s.id AS student_pk, s.name AS student_name, s."studentId" AS student_number
FROM "ExamResult" r
LEFT JOIN "Student" s ON s.id = r."studentId"
WHERE r."examId"=%s
'''

ANSWERS_SQL = '''
SELECT "examResultId", "questionId", "studentAnswer", "isCorrect", points
FROM "StudentAnswer"
WHERE "examResultId" = ANY(%s)
'''


def parse_options(raw: Any) -> Tuple[str, ...]:
    """Options are stored as a JSON array string; anything else yields none."""
    if raw is None:
        return ()
    if isinstance(raw, (list, tuple)):
        return tuple(str(o) for o in raw)
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable question options: {raw!r}")
        return ()
    if not isinstance(decoded, list):
        return ()
    return tuple(str(o) for o in decoded)


def parse_question_type(raw: Optional[str]) -> QuestionType:
    try:
        return QuestionType(raw)
    except ValueError:
        return QuestionType.MULTIPLE_CHOICE


class PostgresExamDataSource:
    """Reads exams, variants and graded results over an open psycopg2 connection."""

    def __init__(self, conn):
        self.conn = conn

    @classmethod
    def connect(cls, dsn: str, connect_timeout: int = 10) -> "PostgresExamDataSource":
        return cls(psycopg2.connect(dsn, connect_timeout=connect_timeout))

    def close(self) -> None:
        self.conn.close()

    def _fetchall(self, sql: str, params: Sequence[Any]) -> List[Dict[str, Any]]:
        with self.conn.cursor(cursor_factory=psycopg2.extras.DictCursor) as cur:
            cur.execute(sql, tuple(params))
            return cur.fetchall()

    def fetch_exam_title(self, exam_id: str) -> str:
        rows = self._fetchall(TITLE_SQL, (exam_id,))
        return rows[0]["title"] if rows else ""

    def fetch_exam_questions(self, exam_id: str) -> List[ExamQuestion]:
        rows = self._fetchall(QUESTIONS_SQL, (exam_id,))
        return [
            ExamQuestion(
                question=Question(
                    id=str(r["id"]),
                    text=r["text"] or "",
                    question_type=parse_question_type(r["type"]),
                    correct_answer=r["correctAnswer"] or "",
                    options=parse_options(r["options"]),
                    points=float(r["question_points"]) if r["question_points"] is not None else 1.0,
                ),
                points=float(r["exam_points"]) if r["exam_points"] is not None else None,
            )
            for r in rows
        ]

    def fetch_variants(self, exam_id: str, generation_id: Optional[str] = None) -> List[ExamVariant]:
        if generation_id is not None:
            rows = self._fetchall(VARIANTS_BY_GENERATION_SQL, (generation_id,))
        else:
            rows = self._fetchall(VARIANTS_BY_EXAM_SQL, (exam_id,))
        return [
            ExamVariant(
                id=str(r["id"]),
                exam_id=str(r["examId"]),
                variant_code=r["variantCode"],
                generation_id=r["generationId"],
                question_order=r["questionOrder"],
                answer_order=r["answerOrder"],
                answer_key=r["answerKey"],
            )
            for r in rows
        ]

    def fetch_generation_variant_codes(self, generation_id: str) -> List[str]:
        rows = self._fetchall(GENERATION_CODES_SQL, (generation_id,))
        return sorted(r["variantCode"] for r in rows if r["variantCode"] is not None)

    def fetch_results(
        self,
        exam_id: str,
        variant_codes: Optional[Sequence[str]] = None,
    ) -> List[RawExamResult]:
        sql = RESULTS_SQL
        params: List[Any] = [exam_id]
        if variant_codes is not None:
            sql += ' AND r."variantCode" = ANY(%s)'
            params.append(list(variant_codes))
        sql += ' ORDER BY r."updatedAt" DESC'
        rows = self._fetchall(sql, params)

        answers: Dict[str, List[RawStudentAnswer]] = {}
        if rows:
            for a in self._fetchall(ANSWERS_SQL, ([r["id"] for r in rows],)):
                answers.setdefault(a["examResultId"], []).append(RawStudentAnswer(
                    question_id=str(a["questionId"]),
                    student_answer=a["studentAnswer"] or "",
                    is_correct=bool(a["isCorrect"]),
                    points=float(a["points"] or 0.0),
                ))

        return [
            RawExamResult(
                id=str(r["id"]),
                exam_id=str(r["examId"]),
                variant_code=r["variantCode"],
                score=float(r["score"] or 0.0),
                total_points=float(r["totalPoints"] or 0.0),
                created_at=r["createdAt"],
                updated_at=r["updatedAt"],
                student=RawStudent(
                    id=str(r["student_pk"]),
                    name=r["student_name"],
                    student_id=r["student_number"],
                ) if r["student_pk"] is not None else None,
                student_answers=answers.get(r["id"], []),
            )
            for r in rows
        ]

"""
Command-line job: run an exam, per-variant or integrity analysis against a
PostgreSQL database and write the result as JSON.

    examstats-analyze --exam <id> [--generation <id>] [--mode exam|variants|integrity]
"""
import argparse
import json
import logging
import sys
from typing import Any, List, Optional

import psycopg2

from ..core.config import get_settings
from ..core.exceptions import ExamStatsError
from ..core.logging_config import configure_logging
from ..data.postgres import PostgresExamDataSource
from ..data.source import ExamDataSource
from ..models.analysis import AnalysisConfig
from ..services.analysis import analyze_exam
from ..services.collector import collect_exam_data
from ..services.integrity import analyze_integrity
from ..services.variant_analysis import analyze_by_variant

logger = logging.getLogger(__name__)

MODES = ("exam", "variants", "integrity")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="examstats-analyze", description="Exam item and integrity analysis")
    ap.add_argument("--dsn", default=None, help="PostgreSQL DSN (defaults to DATABASE_URL)")
    ap.add_argument("--exam", "--exam_id", dest="exam_id", required=True)
    ap.add_argument("--generation", "--generation_id", dest="generation_id", default=None)
    ap.add_argument("--mode", choices=MODES, default="exam")
    ap.add_argument("--min-sample-size", dest="min_sample_size", type=int, default=None)
    ap.add_argument("--confidence", dest="confidence_level", type=float, default=None)
    ap.add_argument("--include-variants", dest="include_variant_results", action="store_true")
    ap.add_argument("--flag-threshold", dest="flag_threshold", type=float, default=None)
    ap.add_argument("--output", "-o", default=None, help="Output file (default stdout)")
    return ap


def run(source: ExamDataSource, args: argparse.Namespace) -> Any:
    """Collect data for one exam and run the requested analysis; returns a JSON-safe payload."""
    settings = get_settings()
    config = AnalysisConfig.from_settings(
        settings,
        min_sample_size=args.min_sample_size,
        confidence_level=args.confidence_level,
        include_variant_results=args.include_variant_results or None,
    )

    data = collect_exam_data(source, args.exam_id, args.generation_id)

    if args.mode == "variants":
        return [r.to_dict() for r in analyze_by_variant(data.variants, data.responses, config, data.exam_title)]
    if args.mode == "integrity":
        threshold = args.flag_threshold if args.flag_threshold is not None else settings.INTEGRITY_FLAG_THRESHOLD
        return analyze_integrity(data.variants, data.responses, config, flag_threshold=threshold).to_dict()
    result = analyze_exam(data.variants, data.responses, config, data.exam_title, exam_id=data.exam_id)
    return result.to_dict()


def write_output(payload: Any, output: Optional[str]) -> None:
    text = json.dumps(payload, indent=2, default=str)
    if output:
        with open(output, "w", encoding="utf-8") as fh:
            fh.write(text)
        logger.info(f"Wrote analysis to {output}")
    else:
        sys.stdout.write(text + "\n")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    dsn = args.dsn or settings.DATABASE_URL
    if not dsn:
        logger.error("No database DSN given; pass --dsn or set DATABASE_URL")
        return 2

    try:
        source = PostgresExamDataSource.connect(dsn, settings.DATABASE_CONNECT_TIMEOUT)
    except psycopg2.Error:
        logger.exception(f"Could not connect to database for exam {args.exam_id}")
        print(f"No data available for exam {args.exam_id}", file=sys.stderr)
        return 1

    try:
        payload = run(source, args)
    except ExamStatsError as e:
        logger.error(f"Analysis failed for exam {args.exam_id}: {e}")
        print(str(e), file=sys.stderr)
        return 1
    except Exception:
        logger.exception(f"Failed to fetch data for exam {args.exam_id}")
        print(f"No data available for exam {args.exam_id}", file=sys.stderr)
        return 1
    finally:
        source.close()

    write_output(payload, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import argparse
from dataclasses import asdict
import json
from pathlib import Path
import sys

from postline.config import get_settings
from postline.services.quality import PipelinePolicy, process_document


def _build_parser() -> argparse.ArgumentParser:
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="postline-check",
        description="Run the quality pipeline over a document without delivering anything",
    )
    parser.add_argument("path", help="Plain-text document to check")
    parser.add_argument(
        "--min-score",
        type=int,
        default=settings.quality_min_score,
        help="Minimum blended score a post needs to be accepted",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full report as JSON",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    policy = PipelinePolicy(
        pre_weight=settings.quality_pre_weight,
        post_weight=settings.quality_post_weight,
        min_score=args.min_score,
    )

    try:
        document = Path(args.path).read_text(encoding="utf-8")
    except OSError as exc:
        print(f"[postline-check] failed: {exc}", file=sys.stderr, flush=True)
        raise SystemExit(1) from exc

    report = process_document(document, policy)

    if args.json:
        payload = {
            "results": [result.to_dict() for result in report.results],
            "summary": asdict(report.summary),
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False), flush=True)
        return

    for index, result in enumerate(report.results, start=1):
        verdict = "ok" if result.is_valid else "rejected"
        line = f"[postline-check] post={index} {verdict} score={result.quality_score}"
        if result.corrections:
            line += f" corrections={len(result.corrections)}"
        if result.rejection_reason:
            line += f" reason={result.rejection_reason!r}"
        print(line, flush=True)

    summary = report.summary
    print(
        "[postline-check] completed "
        f"total={summary.total} "
        f"valid={summary.valid} "
        f"rejected={summary.rejected} "
        f"corrected={summary.corrected} "
        f"avg_score={summary.avg_quality_score}",
        flush=True,
    )


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Score a single exported patient document: resolved metrics, KFRE and PREVENT.

The document is a patient as exported from the store, with its visits and
investigation records embedded.

Usage (from repo root):
    uv run python scripts/score_patient.py data/patient.json
    uv run python scripts/score_patient.py data/patient.json --as-of 2024-06-30
    uv run python scripts/score_patient.py data/patient.json --output out/report.json
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

# Allow running as a script from the repo root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from nephrotrends.config import load_settings
from nephrotrends.models import PatientRecord
from nephrotrends.parsing import parse_date
from nephrotrends.schemas import TRACKED_METRICS, label
from nephrotrends.trends import TrendsReport, build_trends_report

logger = logging.getLogger("score_patient")


def _fmt(value: float | None, digits: int = 1) -> str:
    return "—" if value is None else f"{value:.{digits}f}"


def print_report(report: TrendsReport) -> None:
    print("=" * 72)
    print(f"Patient {report.patient_id}  as of {report.as_of:%Y-%m-%d %H:%M}  "
          f"age={report.age if report.age is not None else '—'}")
    print("=" * 72)
    print(f"{'Metric':<22} {'Value':>10} {'Date':>12} {'Source':>14}")
    print("-" * 72)
    for metric in TRACKED_METRICS:
        obs = getattr(report.metrics, metric)
        if obs is None:
            print(f"{label(metric):<22} {'—':>10} {'':>12} {'':>14}")
        else:
            print(f"{label(metric):<22} {obs.value:>10.2f} {obs.date:%Y-%m-%d} {obs.source:>14}")
    if report.ckd_stage:
        category = report.albuminuria_category or "—"
        print(f"\nKDIGO: {report.ckd_stage} / {category}")

    for result in (report.kidney_failure, report.cardiovascular):
        print("-" * 72)
        print(f"{result.calculator.upper()}")
        for est in result.estimates:
            print(f"  {est.horizon:<24} {_fmt(est.percent):>8}%  {est.band.value}")
        if result.missing:
            print(f"  missing: {', '.join(result.missing)}")
    print("=" * 72)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument("patient", help="Path to a patient JSON document")
    parser.add_argument("--as-of", default=None,
                        help="Evaluation time (ISO date or date-time); default now")
    parser.add_argument("--output", default=None, help="Write the full report as JSON")
    args = parser.parse_args(argv)

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.as_of:
        as_of = parse_date(args.as_of)
        if as_of is None:
            parser.error(f"--as-of is not an ISO date: {args.as_of}")
    else:
        as_of = datetime.now()

    try:
        with open(args.patient, encoding="utf-8") as f:
            doc = json.load(f)
        patient = PatientRecord.from_document(doc)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Cannot load patient document {args.patient}: {e}")
        return 1

    report = build_trends_report(patient, as_of, settings)
    print_report(report)

    if args.output:
        out_path = Path(args.output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(report.model_dump_json(indent=2))
        print(f"\nReport saved to {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Field mappings: where each tracked clinical variable lives in the two record
types, which unit it is canonically expressed in, and how it is labelled in
missing-data reports.
"""
from __future__ import annotations

from typing import NamedTuple, Optional


class MetricField(NamedTuple):
    metric: str                      # ResolvedMetricSet attribute
    label: str                       # missing-data label
    investigation_names: tuple[str, ...]
    visit_field: Optional[str]       # ClinicalData attribute
    canonical_unit: str
    analyte: str                     # unit-conversion table key


# ── field definitions ─────────────────────────────────────────────────────────
# Investigation names are matched case-insensitively after trimming.
_FIELD_DEFS: dict[str, MetricField] = {
    "egfr": MetricField(
        "egfr", "eGFR",
        ("eGFR",),
        None, "mL/min/1.73m²", ""),
    "serum_creatinine": MetricField(
        "serum_creatinine", "Serum Creatinine",
        ("Serum Creatinine", "Creatinine"),
        "serum_creatinine", "mg/dL", "creatinine"),
    "uacr": MetricField(
        "uacr", "UACR",
        ("Urine for AC Ratio (mg/gm)", "UACR", "Urine Albumin Creatinine Ratio"),
        None, "mg/g", "uacr"),
    "total_cholesterol": MetricField(
        "total_cholesterol", "Total Cholesterol",
        ("Total Cholesterol", "Serum Cholesterol"),
        "total_cholesterol", "mg/dL", "cholesterol"),
    "hdl_cholesterol": MetricField(
        "hdl_cholesterol", "HDL Cholesterol",
        ("HDL Cholesterol", "HDL"),
        "hdl_cholesterol", "mg/dL", "cholesterol"),
    "systolic_bp": MetricField(
        "systolic_bp", "Latest SBP",
        (),
        "systolic_bp", "mmHg", "pressure"),
    "bmi": MetricField(
        "bmi", "Latest BMI",
        (),
        "bmi", "kg/m²", ""),
}

TRACKED_METRICS: tuple[str, ...] = tuple(_FIELD_DEFS)

# Reasons reported when a demographic input is absent
AGE_LABEL = "Age"
SEX_LABEL = "Sex"

KFRE_EGFR_TOO_HIGH = "eGFR ≥60 (KFRE only for eGFR <60)"


def field_def(metric: str) -> MetricField:
    return _FIELD_DEFS[metric]


def label(metric: str) -> str:
    return _FIELD_DEFS[metric].label


def metric_for_test(test_name: str) -> Optional[str]:
    """Map an investigation test name onto a tracked metric, if any."""
    key = test_name.strip().lower()
    if not key:
        return None
    for metric, fdef in _FIELD_DEFS.items():
        if any(key == name.lower() for name in fdef.investigation_names):
            return metric
    return None

"""Clinical metric reconciliation and kidney / cardiovascular risk scoring."""

from .calculators import (
    calculate_cardiovascular_risk,
    calculate_kidney_failure_risk,
    ckd_epi_2021,
)
from .models import PatientRecord, ResolvedMetricSet, RiskBand, RiskResult
from .resolver import resolve
from .trends import TrendsPipeline, TrendsReport, build_trends_report

__all__ = [
    "PatientRecord",
    "ResolvedMetricSet",
    "RiskBand",
    "RiskResult",
    "TrendsPipeline",
    "TrendsReport",
    "build_trends_report",
    "calculate_cardiovascular_risk",
    "calculate_kidney_failure_risk",
    "ckd_epi_2021",
    "resolve",
]

"""
Missing-data / applicability checklists.

Each function lists every unmet precondition of one calculator by display
name, so the caller can show a complete checklist rather than the first
failure only.
"""
from __future__ import annotations

from datetime import datetime
from typing import List

from .calculators import KFRE_EGFR_LIMIT
from .models import PatientRecord, ResolvedMetricSet
from .schemas import AGE_LABEL, KFRE_EGFR_TOO_HIGH, SEX_LABEL, label

_KFRE_INPUTS = ("egfr", "uacr")
_PREVENT_INPUTS = ("egfr", "total_cholesterol", "hdl_cholesterol", "systolic_bp", "bmi")


def _demographics_missing(patient: PatientRecord, as_of: datetime) -> List[str]:
    missing = []
    if patient.age_at(as_of) is None:
        missing.append(AGE_LABEL)
    if patient.gender is None:
        missing.append(SEX_LABEL)
    return missing


def kidney_failure_missing(metrics: ResolvedMetricSet, patient: PatientRecord,
                           as_of: datetime) -> List[str]:
    """eGFR >= 60 is reported on its own: the model does not apply there."""
    egfr = metrics.value("egfr")
    if egfr is not None and egfr >= KFRE_EGFR_LIMIT:
        return [KFRE_EGFR_TOO_HIGH]
    missing = [label(m) for m in _KFRE_INPUTS if metrics.value(m) is None]
    return missing + _demographics_missing(patient, as_of)


def cardiovascular_missing(metrics: ResolvedMetricSet, patient: PatientRecord,
                           as_of: datetime) -> List[str]:
    missing = [label(m) for m in _PREVENT_INPUTS if metrics.value(m) is None]
    return missing + _demographics_missing(patient, as_of)

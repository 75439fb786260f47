"""
Lab/vital resolver.

Reduces a patient's investigation batches and visits to one "latest as of"
observation per tracked variable.  Selection is purely by date: the newest
candidate from either source wins.  On an exact date tie the first candidate
in scan order is kept (investigations in list order, then visits in list
order), which keeps the result stable across calls.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterator, NamedTuple, Optional

from .calculators import body_mass_index, ckd_epi_2021
from .models import Observation, PatientRecord, ResolvedMetricSet, VisitRecord
from .parsing import convert, parse_date
from .schemas import TRACKED_METRICS, field_def, metric_for_test

logger = logging.getLogger(__name__)


class Candidate(NamedTuple):
    date: datetime
    value: float
    source: str


def _investigation_candidates(patient: PatientRecord, metric: str,
                              as_of: datetime) -> Iterator[Candidate]:
    fdef = field_def(metric)
    if not fdef.investigation_names:
        return
    for batch in patient.investigation_records:
        if batch.date is None or batch.date > as_of:
            continue
        for test in batch.tests:
            if test.result is None or metric_for_test(test.name) != metric:
                continue
            value = convert(test.result, test.unit, fdef.canonical_unit, fdef.analyte)
            yield Candidate(batch.date, value, "investigation")


def _dated_visits(patient: PatientRecord, as_of: datetime) -> Iterator[VisitRecord]:
    for visit in patient.visits:
        if visit.date is not None and visit.date <= as_of:
            yield visit


def _visit_candidates(patient: PatientRecord, metric: str,
                      as_of: datetime) -> Iterator[Candidate]:
    attr = field_def(metric).visit_field
    if attr is None:
        return
    for visit in _dated_visits(patient, as_of):
        if visit.clinical_data is None:
            continue
        value = getattr(visit.clinical_data, attr)
        if value is not None:
            yield Candidate(visit.date, value, "visit")


def _latest(*sources: Iterator[Candidate]) -> Optional[Candidate]:
    best: Optional[Candidate] = None
    for source in sources:
        for cand in source:
            # strict ">" keeps the first candidate on a tie
            if best is None or cand.date > best.date:
                best = cand
    return best


def _observation(cand: Optional[Candidate]) -> Optional[Observation]:
    if cand is None:
        return None
    return Observation(value=cand.value, date=cand.date, source=cand.source)


def latest_observation(patient: PatientRecord, metric: str,
                       as_of: datetime) -> Optional[Observation]:
    """Newest observation of ``metric`` across both record types."""
    return _observation(_latest(
        _investigation_candidates(patient, metric, as_of),
        _visit_candidates(patient, metric, as_of),
    ))


def latest_visit(patient: PatientRecord, as_of: datetime) -> Optional[VisitRecord]:
    best: Optional[VisitRecord] = None
    for visit in _dated_visits(patient, as_of):
        if best is None or visit.date > best.date:
            best = visit
    return best


def _computed_egfr(patient: PatientRecord, creatinine: Observation,
                   as_of: datetime) -> Optional[Observation]:
    age = patient.age_at(as_of)
    if age is None or patient.gender is None:
        logger.debug(f"Patient {patient.id}: cannot derive eGFR without age and sex")
        return None
    if creatinine.value <= 0:
        logger.debug(f"Patient {patient.id}: ignoring non-positive creatinine {creatinine.value}")
        return None
    return Observation(
        value=ckd_epi_2021(age, patient.gender, creatinine.value),
        date=creatinine.date,
        source="computed",
    )


def resolve_egfr(patient: PatientRecord, as_of: datetime,
                 creatinine: Optional[Observation] = None) -> Optional[Observation]:
    """
    Direct eGFR reading unless a strictly newer creatinine exists, in which
    case eGFR is recomputed from that creatinine.  Without a direct reading
    eGFR is derived from the latest creatinine, if any.
    """
    if creatinine is None:
        creatinine = latest_observation(patient, "serum_creatinine", as_of)
    direct = latest_observation(patient, "egfr", as_of)

    if direct is None:
        return _computed_egfr(patient, creatinine, as_of) if creatinine else None
    if creatinine is not None and creatinine.date > direct.date:
        return _computed_egfr(patient, creatinine, as_of) or direct
    return direct


def resolve_bmi(patient: PatientRecord, as_of: datetime) -> Optional[Observation]:
    """
    BMI of the most recent visit only.  A visit without a recorded BMI but with
    height (cm) and weight (kg) yields a computed BMI; otherwise BMI is absent.
    """
    visit = latest_visit(patient, as_of)
    if visit is None or visit.clinical_data is None:
        return None
    data = visit.clinical_data
    if data.bmi is not None:
        return Observation(value=data.bmi, date=visit.date, source="visit")
    if (data.height or 0) > 0 and (data.weight or 0) > 0:
        return Observation(value=body_mass_index(data.weight, data.height),
                           date=visit.date, source="computed")
    return None


def normalize_as_of(as_of: datetime) -> datetime:
    """Make ``as_of`` comparable with record dates (naive, UTC if aware)."""
    parsed = parse_date(as_of)
    if parsed is None:
        raise ValueError(f"Invalid as_of: {as_of!r}")
    return parsed


def resolve(patient: PatientRecord, as_of: datetime) -> ResolvedMetricSet:
    """Resolve every tracked variable for ``patient`` as of ``as_of``."""
    as_of = normalize_as_of(as_of)

    values = {}
    for metric in TRACKED_METRICS:
        if metric in ("egfr", "bmi"):
            continue
        values[metric] = latest_observation(patient, metric, as_of)
    values["egfr"] = resolve_egfr(patient, as_of, values["serum_creatinine"])
    values["bmi"] = resolve_bmi(patient, as_of)
    return ResolvedMetricSet(**values)

"""
Health-trends pipeline: resolve once, score twice, report what is missing.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Lock
from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .calculators import (
    albuminuria_category,
    calculate_cardiovascular_risk,
    calculate_kidney_failure_risk,
    cardiovascular_band,
    ckd_stage,
    kidney_failure_band,
)
from .config import Settings, load_settings
from .models import (
    CardiovascularRiskInput,
    PatientRecord,
    ResolvedMetricSet,
    RiskEstimate,
    RiskResult,
)
from .reporting import cardiovascular_missing, kidney_failure_missing
from .resolver import normalize_as_of, resolve

logger = logging.getLogger(__name__)


class TrendsReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient_id: str
    as_of: datetime
    age: Optional[int] = None
    metrics: ResolvedMetricSet
    kidney_failure: RiskResult
    cardiovascular: RiskResult
    ckd_stage: Optional[str] = None
    albuminuria_category: Optional[str] = None


def kidney_failure_result(patient: PatientRecord, metrics: ResolvedMetricSet,
                          as_of: datetime, region: str = "north_american") -> RiskResult:
    risk = calculate_kidney_failure_risk(
        patient.age_at(as_of), patient.gender,
        metrics.value("egfr"), metrics.value("uacr"), region,
    )
    return RiskResult(
        calculator="kfre",
        estimates=[
            RiskEstimate(horizon="2-year", percent=risk.two_year,
                         band=kidney_failure_band(risk.two_year)),
            RiskEstimate(horizon="5-year", percent=risk.five_year,
                         band=kidney_failure_band(risk.five_year)),
        ],
        missing=kidney_failure_missing(metrics, patient, as_of),
        applicable=risk.two_year is not None,
    )


def cardiovascular_result(patient: PatientRecord, metrics: ResolvedMetricSet,
                          as_of: datetime) -> RiskResult:
    profile = patient.clinical_profile
    risk = calculate_cardiovascular_risk(CardiovascularRiskInput(
        age=patient.age_at(as_of),
        sex=patient.gender,
        total_cholesterol=metrics.value("total_cholesterol"),
        hdl_cholesterol=metrics.value("hdl_cholesterol"),
        systolic_bp=metrics.value("systolic_bp"),
        egfr=metrics.value("egfr"),
        bmi=metrics.value("bmi"),
        is_smoker=profile.is_smoker,
        has_diabetes=profile.has_diabetes,
        on_anti_hypertensive_medication=profile.on_anti_hypertensive_medication,
        on_statin=profile.on_lipid_lowering_medication,
    ))
    cvd = risk.ten_year_risk if risk else None
    hf = risk.ten_year_heart_failure_risk if risk else None
    thirty = risk.thirty_year_risk if risk else None
    return RiskResult(
        calculator="prevent",
        estimates=[
            RiskEstimate(horizon="10-year", percent=cvd, band=cardiovascular_band(cvd)),
            RiskEstimate(horizon="10-year heart failure", percent=hf,
                         band=cardiovascular_band(hf)),
            RiskEstimate(horizon="30-year", percent=thirty, band=cardiovascular_band(thirty)),
        ],
        missing=cardiovascular_missing(metrics, patient, as_of),
        applicable=risk is not None,
    )


def build_trends_report(patient: PatientRecord, as_of: datetime,
                        settings: Optional[Settings] = None) -> TrendsReport:
    """Pure: the same snapshot and ``as_of`` always give an equal report."""
    settings = settings or Settings()
    as_of = normalize_as_of(as_of)
    metrics = resolve(patient, as_of)
    egfr = metrics.value("egfr")
    uacr = metrics.value("uacr")
    return TrendsReport(
        patient_id=patient.id,
        as_of=as_of,
        age=patient.age_at(as_of),
        metrics=metrics,
        kidney_failure=kidney_failure_result(patient, metrics, as_of, settings.kfre_region),
        cardiovascular=cardiovascular_result(patient, metrics, as_of),
        ckd_stage=ckd_stage(egfr) if egfr is not None else None,
        albuminuria_category=albuminuria_category(uacr) if uacr is not None else None,
    )


class TrendsPipeline:
    """
    Memoizing front end for build_trends_report.

    Reports are cached per (patient snapshot, as_of) in a bounded LRU.  The
    cache only saves work; a miss recomputes an equal report.  Cache access is
    serialised so one pipeline can be shared between threads; report building
    runs outside the lock.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()
        self._cache: "OrderedDict[Tuple[str, datetime], TrendsReport]" = OrderedDict()
        self._lock = Lock()

    def _key(self, patient: PatientRecord, as_of: datetime) -> Tuple[str, datetime]:
        return patient.model_dump_json(), as_of

    def report(self, patient: PatientRecord, as_of: Optional[datetime] = None) -> TrendsReport:
        if as_of is None:
            as_of = datetime.now().replace(second=0, microsecond=0)
        as_of = normalize_as_of(as_of)

        key = self._key(patient, as_of)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                return cached

        result = build_trends_report(patient, as_of, self.settings)
        if self.settings.cache_size > 0:
            with self._lock:
                # another thread may have stored an equal report meanwhile
                result = self._cache.setdefault(key, result)
                self._cache.move_to_end(key)
                while len(self._cache) > self.settings.cache_size:
                    self._cache.popitem(last=False)
        logger.debug(f"Computed trends report for patient {patient.id} as of {as_of.isoformat()}")
        return result

    def clear(self):
        with self._lock:
            self._cache.clear()

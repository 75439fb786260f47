from datetime import datetime

from nephrotrends.models import Observation, ResolvedMetricSet
from nephrotrends.reporting import cardiovascular_missing, kidney_failure_missing
from nephrotrends.resolver import resolve

_DATE = datetime(2024, 1, 1)


def _metrics(**values):
    return ResolvedMetricSet(**{
        name: Observation(value=v, date=_DATE, source="investigation")
        for name, v in values.items()
    })


def test_kfre_egfr_too_high_is_reported_alone(patient_factory, as_of):
    patient = patient_factory(dob=None, gender=None)
    missing = kidney_failure_missing(_metrics(egfr=75), patient, as_of)
    assert missing == ["eGFR ≥60 (KFRE only for eGFR <60)"]


def test_kfre_egfr_exactly_60_is_too_high(patient_factory, as_of):
    missing = kidney_failure_missing(_metrics(egfr=60, uacr=100), patient_factory(), as_of)
    assert missing == ["eGFR ≥60 (KFRE only for eGFR <60)"]


def test_kfre_lists_every_missing_input(patient_factory, as_of):
    patient = patient_factory(dob=None, gender=None)
    assert kidney_failure_missing(_metrics(), patient, as_of) == ["eGFR", "UACR", "Age", "Sex"]
    assert kidney_failure_missing(_metrics(egfr=45), patient, as_of) == ["UACR", "Age", "Sex"]


def test_kfre_nothing_missing(patient_factory, as_of):
    assert kidney_failure_missing(_metrics(egfr=45, uacr=300), patient_factory(), as_of) == []


def test_cardiovascular_missing_with_only_sbp(patient_factory, as_of):
    patient = patient_factory(visits=[{"date": "2024-02-01", "clinicalData": {"systolicBP": 138}}])
    metrics = resolve(patient, as_of)
    assert cardiovascular_missing(metrics, patient, as_of) == [
        "eGFR", "Total Cholesterol", "HDL Cholesterol", "Latest BMI",
    ]


def test_cardiovascular_missing_includes_demographics(patient_factory, as_of):
    patient = patient_factory(dob=None, gender="unknown")
    assert cardiovascular_missing(_metrics(), patient, as_of) == [
        "eGFR", "Total Cholesterol", "HDL Cholesterol", "Latest SBP", "Latest BMI", "Age", "Sex",
    ]


def test_cardiovascular_nothing_missing(ckd_patient, as_of):
    assert cardiovascular_missing(resolve(ckd_patient, as_of), ckd_patient, as_of) == []

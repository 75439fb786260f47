from datetime import datetime, timezone

import pytest

from nephrotrends.calculators import ckd_epi_2021
from nephrotrends.resolver import (
    latest_observation,
    latest_visit,
    resolve,
    resolve_bmi,
    resolve_egfr,
)


def _batch(date, *tests):
    return {"date": date, "tests": [{"name": n, "result": r, "unit": u} for n, r, u in tests]}


def test_latest_uacr_wins(patient_factory, as_of):
    patient = patient_factory(investigationRecords=[
        _batch("2023-06-01", ("Urine for AC Ratio (mg/gm)", "300", "mg/gm")),
        _batch("2024-01-01", ("Urine for AC Ratio (mg/gm)", "50", "mg/gm")),
    ])
    obs = resolve(patient, as_of).uacr
    assert obs.value == 50
    assert obs.date == datetime(2024, 1, 1)
    assert obs.source == "investigation"


def test_investigation_names_match_case_insensitively(patient_factory, as_of):
    patient = patient_factory(investigationRecords=[
        _batch("2024-01-01", ("  hdl cholesterol ", "48", None), ("serum cholesterol", "190", None)),
    ])
    metrics = resolve(patient, as_of)
    assert metrics.value("hdl_cholesterol") == 48
    assert metrics.value("total_cholesterol") == 190


def test_protein_creatinine_ratio_is_not_uacr(patient_factory, as_of):
    patient = patient_factory(investigationRecords=[
        _batch("2024-01-01", ("Urine Protein Creatinine Ratio", "500", "mg/g")),
    ])
    assert resolve(patient, as_of).uacr is None


def test_newest_source_wins_across_record_types(patient_factory, as_of):
    patient = patient_factory(
        investigationRecords=[_batch("2024-01-01", ("Total Cholesterol", "220", "mg/dL"))],
        visits=[{"date": "2024-03-01", "clinicalData": {"totalCholesterol": "180"}}],
    )
    obs = resolve(patient, as_of).total_cholesterol
    assert obs.value == 180
    assert obs.source == "visit"


def test_same_date_tie_keeps_investigation(patient_factory, as_of):
    patient = patient_factory(
        investigationRecords=[_batch("2024-01-01", ("Total Cholesterol", "220", "mg/dL"))],
        visits=[{"date": "2024-01-01", "clinicalData": {"totalCholesterol": "180"}}],
    )
    obs = latest_observation(patient, "total_cholesterol", as_of)
    assert obs.value == 220
    assert obs.source == "investigation"


def test_future_dated_records_are_ignored(patient_factory, as_of):
    patient = patient_factory(
        investigationRecords=[
            _batch("2024-01-01", ("UACR", "120", "mg/g")),
            _batch("2025-01-01", ("UACR", "900", "mg/g")),
        ],
        visits=[
            {"date": "2024-02-01", "clinicalData": {"systolicBP": 130}},
            {"date": "2024-07-01", "clinicalData": {"systolicBP": 180}},
        ],
    )
    metrics = resolve(patient, as_of)
    assert metrics.value("uacr") == 120
    assert metrics.value("systolic_bp") == 130


def test_undated_records_are_ignored(patient_factory, as_of):
    patient = patient_factory(
        investigationRecords=[_batch(None, ("UACR", "120", "mg/g"))],
        visits=[{"date": "not a date", "clinicalData": {"systolicBP": 130}}],
    )
    metrics = resolve(patient, as_of)
    assert metrics.uacr is None
    assert metrics.systolic_bp is None


def test_malformed_values_are_absent(patient_factory, as_of):
    patient = patient_factory(
        investigationRecords=[
            _batch("2023-01-01", ("HDL", "52", "mg/dL")),
            _batch("2024-01-01", ("HDL", "pending", "mg/dL")),
        ],
        visits=[{"date": "2024-02-01", "clinicalData": {"systolicBP": "n/a"}}],
    )
    metrics = resolve(patient, as_of)
    assert metrics.value("hdl_cholesterol") == 52
    assert metrics.systolic_bp is None


def test_malformed_list_items_are_dropped(patient_factory, as_of):
    patient = patient_factory(
        visits=["garbage", None, {"date": "2024-02-01", "clinicalData": {"systolicBP": 128}}],
        investigationRecords=[{"date": "2024-01-01", "tests": [None, "x", {"name": "UACR", "result": 40}]}],
    )
    metrics = resolve(patient, as_of)
    assert metrics.value("systolic_bp") == 128
    assert metrics.value("uacr") == 40


def test_investigation_units_are_converted(patient_factory, as_of):
    patient = patient_factory(investigationRecords=[
        _batch("2024-01-01", ("Serum Creatinine", "106.08", "µmol/L"),
               ("Total Cholesterol", "5.0", "mmol/L")),
    ])
    metrics = resolve(patient, as_of)
    assert metrics.value("serum_creatinine") == pytest.approx(1.2)
    assert metrics.value("total_cholesterol") == pytest.approx(193.35)


def test_egfr_computed_from_creatinine_when_no_direct_reading(patient_factory):
    patient = patient_factory(
        dob="1979-05-01",
        gender="Male",
        visits=[{"date": "2024-01-01", "clinicalData": {"serumCreatinine": "1.2"}}],
    )
    obs = resolve(patient, datetime(2024, 6, 1)).egfr
    assert obs.value == ckd_epi_2021(45, "Male", 1.2)
    assert obs.value == pytest.approx(76.0, abs=0.05)
    assert obs.date == datetime(2024, 1, 1)
    assert obs.source == "computed"


def test_direct_egfr_kept_when_not_older_than_creatinine(patient_factory, as_of):
    patient = patient_factory(
        investigationRecords=[_batch("2024-01-01", ("eGFR", "42", None), ("Creatinine", "1.9", None))],
    )
    obs = resolve_egfr(patient, as_of)
    assert obs.value == 42
    assert obs.source == "investigation"


def test_newer_creatinine_overrides_direct_egfr(patient_factory, as_of):
    patient = patient_factory(
        investigationRecords=[_batch("2023-10-01", ("eGFR", "42", None))],
        visits=[{"date": "2024-03-01", "clinicalData": {"serumCreatinine": 2.5}}],
    )
    obs = resolve_egfr(patient, as_of)
    assert obs.source == "computed"
    assert obs.date == datetime(2024, 3, 1)
    assert obs.value == ckd_epi_2021(60, "Male", 2.5)


def test_newer_creatinine_without_demographics_keeps_direct_egfr(patient_factory, as_of):
    patient = patient_factory(
        dob=None,
        investigationRecords=[_batch("2023-10-01", ("eGFR", "42", None))],
        visits=[{"date": "2024-03-01", "clinicalData": {"serumCreatinine": 2.5}}],
    )
    assert resolve_egfr(patient, as_of).value == 42


def test_no_egfr_without_demographics_or_creatinine(patient_factory, as_of):
    no_sex = patient_factory(
        gender=None,
        visits=[{"date": "2024-03-01", "clinicalData": {"serumCreatinine": 1.1}}],
    )
    assert resolve_egfr(no_sex, as_of) is None
    assert resolve_egfr(patient_factory(), as_of) is None


def test_bmi_comes_from_latest_visit_only(patient_factory, as_of):
    patient = patient_factory(visits=[
        {"date": "2023-01-01", "clinicalData": {"bmi": "29.5"}},
        {"date": "2024-01-01", "clinicalData": {"systolicBP": 135}},
    ])
    assert resolve_bmi(patient, as_of) is None
    assert latest_visit(patient, as_of).date == datetime(2024, 1, 1)

    earlier = resolve_bmi(patient, datetime(2023, 6, 1))
    assert earlier.value == 29.5
    assert earlier.source == "visit"


def test_bmi_computed_from_height_and_weight(patient_factory, as_of):
    patient = patient_factory(visits=[
        {"date": "2023-01-01", "clinicalData": {"bmi": "29.5"}},
        {"date": "2024-01-01", "clinicalData": {"height": "175", "weight": "70"}},
    ])
    bmi = resolve_bmi(patient, as_of)
    assert bmi.value == 22.86
    assert bmi.source == "computed"
    assert bmi.date == datetime(2024, 1, 1)


def test_recorded_bmi_wins_over_height_and_weight(patient_factory, as_of):
    patient = patient_factory(visits=[
        {"date": "2024-01-01", "clinicalData": {"bmi": 31, "height": 175, "weight": 70}},
    ])
    bmi = resolve_bmi(patient, as_of)
    assert bmi.value == 31
    assert bmi.source == "visit"


@pytest.mark.parametrize("clinical", [{"height": 175}, {"weight": 70}, {"height": 0, "weight": 70}])
def test_bmi_needs_both_height_and_weight(patient_factory, as_of, clinical):
    patient = patient_factory(visits=[{"date": "2024-01-01", "clinicalData": clinical}])
    assert resolve_bmi(patient, as_of) is None


def test_empty_patient_resolves_to_nothing(patient_factory, as_of):
    metrics = resolve(patient_factory(), as_of)
    assert metrics.model_dump() == {
        "egfr": None, "uacr": None, "total_cholesterol": None, "hdl_cholesterol": None,
        "systolic_bp": None, "bmi": None, "serum_creatinine": None,
    }


def test_resolve_accepts_aware_as_of(ckd_patient):
    naive = resolve(ckd_patient, datetime(2024, 6, 1))
    aware = resolve(ckd_patient, datetime(2024, 6, 1, tzinfo=timezone.utc))
    assert naive == aware


def test_resolve_rejects_invalid_as_of(ckd_patient):
    with pytest.raises(ValueError):
        resolve(ckd_patient, "whenever")


def test_resolve_is_deterministic(ckd_patient, as_of):
    assert resolve(ckd_patient, as_of) == resolve(ckd_patient, as_of)


def test_egfr_computed_from_investigation_creatinine(patient_factory):
    patient = patient_factory(
        dob="1979-01-15",
        gender="Male",
        investigationRecords=[_batch("2024-01-01", ("Serum Creatinine", "1.2", None))],
    )
    obs = resolve(patient, datetime(2024, 6, 1)).egfr
    assert obs.value == ckd_epi_2021(45, "Male", 1.2)
    assert obs.date == datetime(2024, 1, 1)

from datetime import datetime

import pytest

from nephrotrends.models import PatientRecord

AS_OF = datetime(2024, 6, 1)


def make_patient(**overrides) -> PatientRecord:
    doc = {
        "id": "p-test",
        "name": "Test Patient",
        "dob": "1964-03-10",
        "gender": "male",
        "clinicalProfile": {},
        "visits": [],
        "investigationRecords": [],
    }
    doc.update(overrides)
    return PatientRecord.from_document(doc)


@pytest.fixture
def as_of():
    return AS_OF


@pytest.fixture
def patient_factory():
    return make_patient


@pytest.fixture
def ckd_patient_doc():
    """Male, 60 at AS_OF, CKD G3b / A3 with a full PREVENT input set."""
    return {
        "id": "p-ckd",
        "name": "CKD Patient",
        "dob": "1964-03-10",
        "gender": "Male",
        "clinicalProfile": {
            "hasDiabetes": "Yes",
            "onAntiHypertensiveMedication": True,
            "onLipidLoweringMedication": False,
            "smokingStatus": "No",
            "primaryDiagnosis": "Diabetic kidney disease",
        },
        "visits": [
            {
                "id": "v1",
                "date": "2023-09-15",
                "visitType": "GENERAL",
                "clinicalData": {"systolicBP": "150", "bmi": "31"},
            },
            {
                "id": "v2",
                "date": "2024-02-01T10:30:00Z",
                "visitType": "GENERAL",
                "clinicalData": {"systolicBP": "140", "diastolicBP": "85", "bmi": "28"},
            },
        ],
        "investigationRecords": [
            {
                "id": "i1",
                "date": "2024-01-01",
                "tests": [
                    {"name": "eGFR", "result": "30", "unit": "mL/min/1.73m²"},
                    {"name": "Urine for AC Ratio (mg/gm)", "result": "300", "unit": "mg/gm"},
                    {"name": "Total Cholesterol", "result": "200", "unit": "mg/dL"},
                    {"name": "HDL Cholesterol", "result": 45, "unit": "mg/dL"},
                    {"name": "Haemoglobin", "result": "11.2", "unit": "g/dL"},
                ],
            },
        ],
    }


@pytest.fixture
def ckd_patient(ckd_patient_doc):
    return PatientRecord.from_document(ckd_patient_doc)

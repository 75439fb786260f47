import importlib.util
import json
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "score_patient.py"


@pytest.fixture
def score_patient():
    module_spec = importlib.util.spec_from_file_location("score_patient", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


def test_writes_json_report(score_patient, ckd_patient_doc, tmp_path, capsys):
    patient_path = tmp_path / "patient.json"
    patient_path.write_text(json.dumps(ckd_patient_doc))
    out_path = tmp_path / "out" / "report.json"

    code = score_patient.main([str(patient_path), "--as-of", "2024-06-01", "--output", str(out_path)])

    assert code == 0
    report = json.loads(out_path.read_text(encoding="utf-8"))
    assert report["patient_id"] == "p-ckd"
    assert report["ckd_stage"] == "G3b"
    assert report["kidney_failure"]["estimates"][1]["band"] == "High"
    printed = capsys.readouterr().out
    assert "KFRE" in printed
    assert "PREVENT" in printed


def test_unreadable_document_returns_error(score_patient, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    assert score_patient.main([str(bad), "--as-of", "2024-06-01"]) == 1


def test_invalid_as_of_exits(score_patient, ckd_patient_doc, tmp_path):
    patient_path = tmp_path / "patient.json"
    patient_path.write_text(json.dumps(ckd_patient_doc))
    with pytest.raises(SystemExit):
        score_patient.main([str(patient_path), "--as-of", "someday"])

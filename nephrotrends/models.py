"""Pydantic models for patient snapshots and risk outputs."""

from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .parsing import parse_bool, parse_date, parse_number, parse_sex

logger = logging.getLogger(__name__)

Sex = Literal["Male", "Female"]


class _Document(BaseModel):
    """Base for models built from store documents (camelCase, extra keys)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


def _records(raw: Any) -> List[Any]:
    """Keep only mapping (or already-built model) items of a list field."""
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        logger.debug(f"Expected a list, got {type(raw).__name__}; treating as empty")
        return []
    kept = [item for item in raw if isinstance(item, (dict, BaseModel))]
    if len(kept) != len(raw):
        logger.debug(f"Dropped {len(raw) - len(kept)} malformed list item(s)")
    return kept


# ── Store documents ──────────────────────────────────────────────────────────

class InvestigationTest(_Document):
    """A single test result inside an investigation batch."""

    id: Optional[str] = None
    group: Optional[str] = None
    name: str = ""
    result: Optional[float] = None
    unit: Optional[str] = None
    normal_range: Optional[str] = Field(default=None, alias="normalRange")

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v: Any) -> str:
        return str(v).strip() if v is not None else ""

    @field_validator("result", mode="before")
    @classmethod
    def _result(cls, v: Any) -> Optional[float]:
        return parse_number(v)


class InvestigationBatch(_Document):
    """A dated set of investigations."""

    id: Optional[str] = None
    date: Optional[datetime] = None
    tests: List[InvestigationTest] = []
    notes: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, v: Any) -> Optional[datetime]:
        return parse_date(v)

    @field_validator("tests", mode="before")
    @classmethod
    def _tests(cls, v: Any) -> List[Any]:
        return _records(v)


class Medication(_Document):
    id: Optional[str] = None
    name: str = ""
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    instructions: Optional[str] = None


class Diagnosis(_Document):
    id: Optional[str] = None
    name: str = ""
    icd_name: Optional[str] = Field(default=None, alias="icdName")
    icd_code: Optional[str] = Field(default=None, alias="icdCode")


class ClinicalData(_Document):
    """Typed view of a visit's free-form clinical-data bag."""

    serum_creatinine: Optional[float] = Field(default=None, alias="serumCreatinine")
    systolic_bp: Optional[float] = Field(default=None, alias="systolicBP")
    diastolic_bp: Optional[float] = Field(default=None, alias="diastolicBP")
    total_cholesterol: Optional[float] = Field(default=None, alias="totalCholesterol")
    hdl_cholesterol: Optional[float] = Field(default=None, alias="hdlCholesterol")
    bmi: Optional[float] = None
    height: Optional[float] = None  # cm
    weight: Optional[float] = None  # kg
    medications: List[Medication] = []
    diagnoses: List[Diagnosis] = []

    @field_validator(
        "serum_creatinine", "systolic_bp", "diastolic_bp", "total_cholesterol",
        "hdl_cholesterol", "bmi", "height", "weight", mode="before",
    )
    @classmethod
    def _number(cls, v: Any) -> Optional[float]:
        return parse_number(v)

    @field_validator("medications", "diagnoses", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> List[Any]:
        return _records(v)


class VisitRecord(_Document):
    id: Optional[str] = None
    date: Optional[datetime] = None
    visit_type: Optional[str] = Field(default=None, alias="visitType")
    clinical_data: Optional[ClinicalData] = Field(default=None, alias="clinicalData")
    diagnoses: List[Diagnosis] = []

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, v: Any) -> Optional[datetime]:
        return parse_date(v)

    @field_validator("clinical_data", mode="before")
    @classmethod
    def _clinical_data(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, BaseModel)) else None

    @field_validator("diagnoses", mode="before")
    @classmethod
    def _diagnoses(cls, v: Any) -> List[Any]:
        return _records(v)


class ClinicalProfile(_Document):
    """Static flags used as risk-calculator inputs."""

    has_diabetes: bool = Field(default=False, alias="hasDiabetes")
    on_anti_hypertensive_medication: bool = Field(
        default=False, alias="onAntiHypertensiveMedication")
    on_lipid_lowering_medication: bool = Field(
        default=False, alias="onLipidLoweringMedication")
    smoking_status: Optional[str] = Field(default=None, alias="smokingStatus")  # 'Yes', 'No', 'NIL'
    primary_diagnosis: Optional[str] = Field(default=None, alias="primaryDiagnosis")
    tags: List[str] = []

    @field_validator(
        "has_diabetes", "on_anti_hypertensive_medication",
        "on_lipid_lowering_medication", mode="before",
    )
    @classmethod
    def _flag(cls, v: Any) -> bool:
        return parse_bool(v)

    @field_validator("smoking_status", "primary_diagnosis", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return str(v) if v is not None else None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, v: Any) -> List[str]:
        if not isinstance(v, (list, tuple)):
            return []
        return [str(t) for t in v if t is not None]

    @property
    def is_smoker(self) -> bool:
        return parse_bool(self.smoking_status)


class PatientRecord(_Document):
    """Immutable snapshot of a patient document with embedded sub-records."""

    id: str = ""
    name: Optional[str] = None
    dob: Optional[date] = None
    gender: Optional[Sex] = None
    clinical_profile: ClinicalProfile = Field(
        default_factory=ClinicalProfile, alias="clinicalProfile")
    visits: List[VisitRecord] = []
    investigation_records: List[InvestigationBatch] = Field(
        default_factory=list, alias="investigationRecords")

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v: Any) -> str:
        return str(v) if v is not None else ""

    @field_validator("dob", mode="before")
    @classmethod
    def _dob(cls, v: Any) -> Optional[date]:
        parsed = parse_date(v)
        return parsed.date() if parsed else None

    @field_validator("gender", mode="before")
    @classmethod
    def _gender(cls, v: Any) -> Optional[str]:
        return parse_sex(v)

    @field_validator("clinical_profile", mode="before")
    @classmethod
    def _profile(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, BaseModel)) else {}

    @field_validator("visits", "investigation_records", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> List[Any]:
        return _records(v)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "PatientRecord":
        """Build a snapshot from a raw store document."""
        return cls.model_validate(doc)

    def age_at(self, as_of: datetime) -> Optional[int]:
        """Whole-year age: calendar year of ``as_of`` minus birth year."""
        if self.dob is None:
            return None
        return as_of.year - self.dob.year


# ── Resolver output ──────────────────────────────────────────────────────────

class Observation(BaseModel):
    """One resolved value and the date it was observed (or derived)."""

    model_config = ConfigDict(frozen=True)

    value: float
    date: datetime
    source: Literal["investigation", "visit", "computed"]


class ResolvedMetricSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    egfr: Optional[Observation] = None
    uacr: Optional[Observation] = None
    total_cholesterol: Optional[Observation] = None
    hdl_cholesterol: Optional[Observation] = None
    systolic_bp: Optional[Observation] = None
    bmi: Optional[Observation] = None
    serum_creatinine: Optional[Observation] = None

    def value(self, metric: str) -> Optional[float]:
        obs = getattr(self, metric)
        return obs.value if obs is not None else None


# ── Risk outputs ─────────────────────────────────────────────────────────────

class RiskBand(str, Enum):
    """Qualitative risk band shown next to a percentage."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NOT_APPLICABLE = "Not applicable"


class KidneyFailureRisk(BaseModel):
    model_config = ConfigDict(frozen=True)

    two_year: Optional[float] = None
    five_year: Optional[float] = None
    equation: Optional[Literal["4-variable", "8-variable"]] = None


class CardiovascularRiskInput(BaseModel):
    age: Optional[float] = None
    sex: Optional[Sex] = None
    total_cholesterol: Optional[float] = None  # mg/dL
    hdl_cholesterol: Optional[float] = None  # mg/dL
    systolic_bp: Optional[float] = None  # mmHg
    egfr: Optional[float] = None  # mL/min/1.73m^2
    bmi: Optional[float] = None  # kg/m^2
    is_smoker: bool = False
    has_diabetes: bool = False
    on_anti_hypertensive_medication: bool = False
    on_statin: bool = False


class CardiovascularRisk(BaseModel):
    model_config = ConfigDict(frozen=True)

    ten_year_risk: Optional[float] = None
    ten_year_heart_failure_risk: Optional[float] = None
    thirty_year_risk: Optional[float] = None  # age < 60 only


class DisabilityAssessment(BaseModel):
    """CKD disability grading from the KDIGO G x A matrix."""

    model_config = ConfigDict(frozen=True)

    egfr: float
    ckd_stage: str
    ckd_stage_description: str
    albuminuria_category: str
    albuminuria_description: str
    disability_percentage: int
    on_rrt: bool = False
    recommendations: List[str] = []


class RiskEstimate(BaseModel):
    model_config = ConfigDict(frozen=True)

    horizon: str
    percent: Optional[float] = None
    band: RiskBand = RiskBand.NOT_APPLICABLE


class RiskResult(BaseModel):
    """Scores, bands and the missing-input checklist for one calculator."""

    model_config = ConfigDict(frozen=True)

    calculator: str
    estimates: List[RiskEstimate] = []
    missing: List[str] = []
    applicable: bool = False


# ── Calculator registry / executor envelopes ─────────────────────────────────

class CalcInput(BaseModel):
    id: str
    label: str
    type: str = "number"
    required: bool = True
    canonical_unit: str = ""
    synonyms: List[str] = []
    constraints: Dict[str, Any] = {}


class CalculatorDef(BaseModel):
    id: str
    title: str
    description: str
    version: str
    tags: List[str]
    inputs: List[CalcInput] = []


class CalcInfoResult(BaseModel):
    """Result from calc_info."""

    calc_id: str
    title: str
    description: Optional[str] = None
    version: str
    tags: List[str] = []
    inputs: List[Dict[str, Any]]


class ExecuteCalcResult(BaseModel):
    """Result from running a registered calculator."""

    success: bool
    outputs: Optional[Dict[str, Any]] = None
    errors: List[Any] = []
    warnings: List[Any] = []
    audit_trace: Optional[Dict[str, Any]] = None

    def error_messages(self) -> List[str]:
        """Get error messages as strings."""
        msgs = []
        for e in self.errors:
            if isinstance(e, str):
                msgs.append(e)
            elif isinstance(e, dict):
                msgs.append(e.get("message", str(e)))
            else:
                msgs.append(str(e))
        return msgs

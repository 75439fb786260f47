"""
Kidney and cardiovascular risk calculators.

Pure numeric functions (``ckd_epi_2021``, ``calculate_kidney_failure_risk``,
``calculate_cardiovascular_risk``) plus ``run_*`` wrappers that accept loosely
typed variables and return the execute-style envelope used by the registry.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from .models import (
    CalcInput,
    CalculatorDef,
    CardiovascularRisk,
    CardiovascularRiskInput,
    DisabilityAssessment,
    KidneyFailureRisk,
    RiskBand,
)
from .parsing import convert, parse_bool, parse_number, parse_sex, parse_str

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _clamp(val: float, lo: float, hi: float) -> float:
    return max(lo, min(val, hi))


def _ok(result: Any, inputs_used: Dict[str, str], log: List[str]) -> Dict[str, Any]:
    return {
        "success": True,
        "outputs": {"result": result},
        "audit_trace": {"inputs_used": inputs_used, "log": log},
        "errors": [],
        "warnings": [],
    }


def _err(msg: str) -> Dict[str, Any]:
    return {"success": False, "outputs": {}, "errors": [msg], "warnings": []}


def _missing(v: Dict[str, Any], *keys: str) -> List[str]:
    return [k for k in keys if parse_number(v.get(k)) is None]


# ── Risk bands ───────────────────────────────────────────────────────────────

def kidney_failure_band(percent: Optional[float]) -> RiskBand:
    if percent is None:
        return RiskBand.NOT_APPLICABLE
    if percent > 20:
        return RiskBand.HIGH
    if percent > 5:
        return RiskBand.MEDIUM
    return RiskBand.LOW


def cardiovascular_band(percent: Optional[float]) -> RiskBand:
    if percent is None:
        return RiskBand.NOT_APPLICABLE
    if percent > 7.5:
        return RiskBand.HIGH
    if percent > 5:
        return RiskBand.MEDIUM
    return RiskBand.LOW


# ── 1. CKD-EPI GFR (2021, race-free) ────────────────────────────────────────

def ckd_epi_2021(age: float, sex: str, creatinine: float) -> float:
    """eGFR in mL/min/1.73m², creatinine in mg/dL, rounded to 2 decimals."""
    is_female = sex == "Female"
    kappa = 0.7 if is_female else 0.9
    alpha = -0.241 if is_female else -0.302
    ratio = creatinine / kappa
    egfr = (142 * min(ratio, 1) ** alpha * max(ratio, 1) ** -1.200
            * 0.9938 ** age * (1.012 if is_female else 1.0))
    return round(egfr, 2)


def run_ckd_epi_gfr(v: Dict[str, Any]) -> Dict[str, Any]:
    try:
        missing = _missing(v, "age", "serum_creatinine")
        sex = parse_sex(v.get("sex"))
        if sex is None:
            missing.append("sex")
        if missing:
            return _err(f"Missing required inputs: {', '.join(missing)}")
        age = parse_number(v.get("age"))
        cr = convert(v.get("serum_creatinine"), canonical_unit="mg/dL", analyte="creatinine")
        if cr <= 0:
            return _err("Serum creatinine must be > 0")
        result = ckd_epi_2021(age, sex, cr)
        return _ok(result, {"age": str(age), "sex": sex, "creatinine": f"{cr} mg/dL"},
                   ["CKD-EPI 2021 creatinine equation"])
    except Exception as e:
        return _err(str(e))


# ── 2. Kidney Failure Risk Equation (4- and 8-variable) ─────────────────────
# Tangri et al., JAMA 2011; recalibrated baselines from Tangri et al., JAMA 2016.
# The 8-variable equation adds serum calcium, phosphate, albumin and
# bicarbonate and is used only when all four are present.

KFRE_EGFR_LIMIT = 60.0

_KFRE_BASELINE_SURVIVAL: Dict[str, Dict[str, float]] = {
    "north_american":     {"two_year": 0.9750, "five_year": 0.9240},
    "non_north_american": {"two_year": 0.9832, "five_year": 0.9365},
}

_KFRE8_BASELINE_SURVIVAL: Dict[str, Dict[str, float]] = {
    "north_american":     {"two_year": 0.9780, "five_year": 0.9301},
    "non_north_american": {"two_year": 0.9827, "five_year": 0.9245},
}

# (coefficient, cohort mean); units mg/dL, mg/dL, g/dL, mEq/L
_KFRE8_LAB_TERMS: Dict[str, Tuple[float, float]] = {
    "calcium":     (-0.2228, 9.355),
    "phosphate":   (0.2604, 3.916),
    "albumin":     (-0.3441, 3.997),
    "bicarbonate": (0.07354, 25.57),
}


def _kfre_linear_predictor(age: float, is_male: bool, egfr: float, uacr: float) -> float:
    return (-0.2201 * (age / 10 - 7.036)
            + 0.2467 * ((1 if is_male else 0) - 0.5642)
            - 0.5567 * (egfr / 5 - 7.222)
            + 0.4510 * (math.log(uacr) - 5.137))


def _kfre8_linear_predictor(age: float, is_male: bool, egfr: float, uacr: float,
                            labs: Dict[str, float]) -> float:
    lp = (-0.1992 * (age / 10 - 7.036)
          + 0.1602 * ((1 if is_male else 0) - 0.5642)
          - 0.4919 * (egfr / 5 - 7.222)
          + 0.3364 * (math.log(uacr) - 5.137))
    for name, (beta, mean) in _KFRE8_LAB_TERMS.items():
        lp += beta * (labs[name] - mean)
    return lp


def calculate_kidney_failure_risk(
    age: Optional[float],
    sex: Optional[str],
    egfr: Optional[float],
    uacr: Optional[float],
    region: str = "north_american",
    calcium: Optional[float] = None,
    phosphate: Optional[float] = None,
    albumin: Optional[float] = None,
    bicarbonate: Optional[float] = None,
) -> KidneyFailureRisk:
    """
    2- and 5-year probability (%) of kidney failure requiring dialysis or
    transplant.  Both horizons are None when an input is missing or when
    eGFR >= 60, where the equation is not validated.

    Calcium, phosphate (mg/dL), albumin (g/dL) and bicarbonate (mEq/L) select
    the 8-variable equation when all four are given; otherwise the
    4-variable equation is used.
    """
    if age is None or sex is None or egfr is None or uacr is None:
        return KidneyFailureRisk()
    if egfr >= KFRE_EGFR_LIMIT:
        return KidneyFailureRisk()
    if uacr <= 0:
        logger.debug(f"KFRE skipped: non-positive UACR {uacr}")
        return KidneyFailureRisk()

    labs = {"calcium": calcium, "phosphate": phosphate, "albumin": albumin,
            "bicarbonate": bicarbonate}
    is_male = sex == "Male"
    try:
        if all(val is not None for val in labs.values()):
            equation = "8-variable"
            baseline = _KFRE8_BASELINE_SURVIVAL[region]
            lp = _kfre8_linear_predictor(age, is_male, egfr, uacr, labs)
        else:
            equation = "4-variable"
            baseline = _KFRE_BASELINE_SURVIVAL[region]
            lp = _kfre_linear_predictor(age, is_male, egfr, uacr)
        hazard = math.exp(lp)
        return KidneyFailureRisk(
            two_year=100 * (1 - baseline["two_year"] ** hazard),
            five_year=100 * (1 - baseline["five_year"] ** hazard),
            equation=equation,
        )
    except (ArithmeticError, ValueError, KeyError) as e:
        logger.warning(f"KFRE computation failed: {e}")
        return KidneyFailureRisk()


def run_kfre(v: Dict[str, Any]) -> Dict[str, Any]:
    try:
        missing = _missing(v, "age", "egfr", "uacr")
        sex = parse_sex(v.get("sex"))
        if sex is None:
            missing.append("sex")
        if missing:
            return _err(f"Missing required inputs: {', '.join(missing)}")
        age = parse_number(v.get("age"))
        egfr = parse_number(v.get("egfr"))
        uacr = convert(v.get("uacr"), canonical_unit="mg/g", analyte="uacr")
        if egfr >= KFRE_EGFR_LIMIT:
            return _err("KFRE is only validated for eGFR < 60")
        region = parse_str(v.get("region")).strip().lower() or "north_american"
        if region not in _KFRE_BASELINE_SURVIVAL:
            return _err(f"Unknown KFRE region: {region}")
        labs = {
            "calcium": convert(v.get("calcium"), canonical_unit="mg/dL", analyte="calcium"),
            "phosphate": convert(v.get("phosphate"), canonical_unit="mg/dL", analyte="phosphate"),
            "albumin": convert(v.get("albumin"), canonical_unit="g/dL", analyte="albumin"),
            "bicarbonate": convert(v.get("bicarbonate"), canonical_unit="mEq/L",
                                   analyte="bicarbonate"),
        }
        risk = calculate_kidney_failure_risk(age, sex, egfr, uacr, region, **labs)
        if risk.two_year is None:
            return _err("UACR must be > 0")

        used = {"age": str(age), "sex": sex, "eGFR": str(egfr), "UACR": f"{uacr} mg/g",
                "region": region}
        warnings = []
        if risk.equation == "8-variable":
            used.update({name: str(val) for name, val in labs.items()})
        elif any(val is not None for val in labs.values()):
            absent = [name for name, val in labs.items() if val is None]
            warnings.append(f"8-variable KFRE needs {', '.join(absent)}; "
                            f"4-variable equation used")
        result = _ok(
            {"two_year": round(risk.two_year, 5), "five_year": round(risk.five_year, 5),
             "equation": risk.equation},
            used,
            [f"KFRE {risk.equation}: risk = 1 - S0(t)^exp(lp)"],
        )
        result["warnings"] = warnings
        return result
    except Exception as e:
        return _err(str(e))


# ── 3. AHA PREVENT (base model, 10- and 30-year) ────────────────────────────
# Khan et al., Circulation 2024.  Sex-specific logistic equations.  The 30-year
# equation adds a squared age term and is reported for ages below 60 only.

MG_DL_TO_MMOL_L = 0.02586

_PREVENT_CVD: Dict[str, Dict[str, float]] = {
    "Female": {
        "const": -3.307728, "age": 0.7939329, "non_hdl": 0.0305239, "hdl": -0.1606857,
        "sbp_lt110": -0.2394003, "sbp_ge110": 0.360078, "diabetes": 0.8667604,
        "smoking": 0.5360739, "egfr_lt60": 0.6045917, "egfr_ge60": 0.0433769,
        "bp_tx": 0.3151672, "statin": -0.1477655, "treated_sbp": -0.0663612,
        "treated_non_hdl": 0.1197879, "age_non_hdl": -0.0819715, "age_hdl": 0.0306769,
        "age_sbp": -0.0946348, "age_diabetes": -0.27057, "age_smoking": -0.078715,
        "age_egfr": -0.1637806,
    },
    "Male": {
        "const": -3.031168, "age": 0.7688528, "non_hdl": 0.0736174, "hdl": -0.0954431,
        "sbp_lt110": -0.4347345, "sbp_ge110": 0.3362658, "diabetes": 0.7692857,
        "smoking": 0.4386871, "egfr_lt60": 0.5378979, "egfr_ge60": 0.0164827,
        "bp_tx": 0.288879, "statin": -0.1337349, "treated_sbp": -0.0475924,
        "treated_non_hdl": 0.150273, "age_non_hdl": -0.0517874, "age_hdl": 0.0191169,
        "age_sbp": -0.1049477, "age_diabetes": -0.2251948, "age_smoking": -0.0895067,
        "age_egfr": -0.1543702,
    },
}

_PREVENT_HF: Dict[str, Dict[str, float]] = {
    "Female": {
        "const": -4.310409, "age": 0.8998235, "sbp_lt110": -0.4559771,
        "sbp_ge110": 0.3576505, "diabetes": 1.038346, "smoking": 0.583916,
        "bmi_lt30": -0.0072294, "bmi_ge30": 0.2997706, "egfr_lt60": 0.7451638,
        "egfr_ge60": 0.0557087, "bp_tx": 0.3534442, "treated_sbp": -0.0981511,
        "age_sbp": -0.0946663, "age_diabetes": -0.3581041, "age_smoking": -0.1159453,
        "age_bmi": -0.003878, "age_egfr": -0.1884289,
    },
    "Male": {
        "const": -3.946391, "age": 0.8972642, "sbp_lt110": -0.6811466,
        "sbp_ge110": 0.3634461, "diabetes": 0.923776, "smoking": 0.5023736,
        "bmi_lt30": -0.0485841, "bmi_ge30": 0.3726929, "egfr_lt60": 0.6926917,
        "egfr_ge60": 0.0251827, "bp_tx": 0.2980922, "treated_sbp": -0.0497731,
        "age_sbp": -0.1289201, "age_diabetes": -0.3040924, "age_smoking": -0.1401688,
        "age_bmi": 0.0068126, "age_egfr": -0.1797778,
    },
}

_PREVENT_CVD_30: Dict[str, Dict[str, float]] = {
    "Female": {
        "const": -1.318827, "age": 0.5503079, "age_sq": -0.0928369, "non_hdl": 0.0409794,
        "hdl": -0.1663306, "sbp_lt110": -0.1628654, "sbp_ge110": 0.3299505,
        "diabetes": 0.6793894, "smoking": 0.3196112, "egfr_lt60": 0.1857101,
        "egfr_ge60": 0.0553528, "bp_tx": 0.2894, "statin": -0.075688,
        "treated_sbp": -0.056367, "treated_non_hdl": 0.1071019, "age_non_hdl": -0.0751438,
        "age_hdl": 0.0301786, "age_sbp": -0.0998776, "age_diabetes": -0.3206166,
        "age_smoking": -0.1607862, "age_egfr": -0.1450788,
    },
    "Male": {
        "const": -1.148204, "age": 0.4627309, "age_sq": -0.0984281, "non_hdl": 0.0836088,
        "hdl": -0.1029824, "sbp_lt110": -0.2140352, "sbp_ge110": 0.2904325,
        "diabetes": 0.5331276, "smoking": 0.2141914, "egfr_lt60": 0.1155556,
        "egfr_ge60": 0.0603775, "bp_tx": 0.232714, "statin": -0.0272112,
        "treated_sbp": -0.0384488, "treated_non_hdl": 0.134192, "age_non_hdl": -0.0511759,
        "age_hdl": 0.0165865, "age_sbp": -0.1101437, "age_diabetes": -0.2585943,
        "age_smoking": -0.1566406, "age_egfr": -0.1166776,
    },
}

PREVENT_30_YEAR_MAX_AGE = 60


def _prevent_terms(inp: CardiovascularRiskInput) -> Dict[str, float]:
    """Centered / splined PREVENT predictors."""
    age = (inp.age - 55) / 10
    non_hdl = (inp.total_cholesterol - inp.hdl_cholesterol) * MG_DL_TO_MMOL_L - 3.5
    hdl = (inp.hdl_cholesterol * MG_DL_TO_MMOL_L - 1.3) / 0.3
    sbp_ge110 = (max(inp.systolic_bp, 110) - 130) / 20
    egfr_lt60 = (min(inp.egfr, 60) - 60) / -15
    bmi_ge30 = (max(inp.bmi, 30) - 30) / 5
    diabetes = 1.0 if inp.has_diabetes else 0.0
    smoking = 1.0 if inp.is_smoker else 0.0
    bp_tx = 1.0 if inp.on_anti_hypertensive_medication else 0.0
    statin = 1.0 if inp.on_statin else 0.0
    return {
        "const": 1.0,
        "age": age,
        "age_sq": age * age,
        "non_hdl": non_hdl,
        "hdl": hdl,
        "sbp_lt110": (min(inp.systolic_bp, 110) - 110) / 20,
        "sbp_ge110": sbp_ge110,
        "diabetes": diabetes,
        "smoking": smoking,
        "egfr_lt60": egfr_lt60,
        "egfr_ge60": (max(inp.egfr, 60) - 90) / -15,
        "bmi_lt30": (min(inp.bmi, 30) - 25) / 5,
        "bmi_ge30": bmi_ge30,
        "bp_tx": bp_tx,
        "statin": statin,
        "treated_sbp": bp_tx * sbp_ge110,
        "treated_non_hdl": statin * non_hdl,
        "age_non_hdl": age * non_hdl,
        "age_hdl": age * hdl,
        "age_sbp": age * sbp_ge110,
        "age_diabetes": age * diabetes,
        "age_smoking": age * smoking,
        "age_egfr": age * egfr_lt60,
        "age_bmi": age * bmi_ge30,
    }


def _logistic_percent(coeffs: Dict[str, float], terms: Dict[str, float]) -> float:
    x = sum(beta * terms[name] for name, beta in coeffs.items())
    return _clamp(100 * math.exp(x) / (1 + math.exp(x)), 0.0, 100.0)


_PREVENT_REQUIRED = ("age", "total_cholesterol", "hdl_cholesterol", "systolic_bp", "egfr", "bmi")


def calculate_cardiovascular_risk(inp: CardiovascularRiskInput) -> Optional[CardiovascularRisk]:
    """
    10-year total CVD risk (%), 10-year heart-failure risk (%) and, below age
    60, 30-year total CVD risk (%).

    Returns None when any required numeric input is missing or when the
    computation fails; never raises.
    """
    if inp.sex is None or any(getattr(inp, name) is None for name in _PREVENT_REQUIRED):
        return None
    try:
        terms = _prevent_terms(inp)
        thirty_year = None
        if inp.age < PREVENT_30_YEAR_MAX_AGE:
            thirty_year = _logistic_percent(_PREVENT_CVD_30[inp.sex], terms)
        return CardiovascularRisk(
            ten_year_risk=_logistic_percent(_PREVENT_CVD[inp.sex], terms),
            ten_year_heart_failure_risk=_logistic_percent(_PREVENT_HF[inp.sex], terms),
            thirty_year_risk=thirty_year,
        )
    except Exception as e:
        logger.warning(f"PREVENT computation failed: {e}")
        return None


def run_prevent(v: Dict[str, Any]) -> Dict[str, Any]:
    try:
        inp = CardiovascularRiskInput(
            age=parse_number(v.get("age")),
            sex=parse_sex(v.get("sex")),
            total_cholesterol=convert(v.get("total_cholesterol"), canonical_unit="mg/dL",
                                      analyte="cholesterol"),
            hdl_cholesterol=convert(v.get("hdl_cholesterol"), canonical_unit="mg/dL",
                                    analyte="cholesterol"),
            systolic_bp=convert(v.get("systolic_bp"), canonical_unit="mmHg", analyte="pressure"),
            egfr=parse_number(v.get("egfr")),
            bmi=parse_number(v.get("bmi")),
            is_smoker=parse_bool(v.get("smoker", False)),
            has_diabetes=parse_bool(v.get("diabetes", False)),
            on_anti_hypertensive_medication=parse_bool(v.get("bp_medication", False)),
            on_statin=parse_bool(v.get("statin", False)),
        )
        missing = [name for name in _PREVENT_REQUIRED if getattr(inp, name) is None]
        if inp.sex is None:
            missing.append("sex")
        if missing:
            return _err(f"Missing required inputs: {', '.join(missing)}")
        risk = calculate_cardiovascular_risk(inp)
        if risk is None:
            return _err("PREVENT computation failed")
        return _ok(
            {"ten_year_cvd": round(risk.ten_year_risk, 5),
             "ten_year_heart_failure": round(risk.ten_year_heart_failure_risk, 5),
             "thirty_year_cvd": (round(risk.thirty_year_risk, 5)
                                 if risk.thirty_year_risk is not None else None)},
            {"age": str(inp.age), "sex": inp.sex, "TC": str(inp.total_cholesterol),
             "HDL": str(inp.hdl_cholesterol), "SBP": str(inp.systolic_bp),
             "eGFR": str(inp.egfr), "BMI": str(inp.bmi)},
            ["PREVENT base model: risk = e^x / (1 + e^x)"],
        )
    except Exception as e:
        return _err(str(e))


# ── 4. KDIGO CKD staging ─────────────────────────────────────────────────────

CKD_STAGE_DESCRIPTIONS: Dict[str, str] = {
    "G1": "Normal or high (≥90 ml/min/1.73m²)",
    "G2": "Mildly decreased (60-89 ml/min/1.73m²)",
    "G3a": "Mildly to moderately decreased (45-59 ml/min/1.73m²)",
    "G3b": "Moderately to severely decreased (30-44 ml/min/1.73m²)",
    "G4": "Severely decreased (15-29 ml/min/1.73m²)",
    "G5": "Kidney failure (<15 ml/min/1.73m²)",
}

ALBUMINURIA_DESCRIPTIONS: Dict[str, str] = {
    "A1": "Normal to mildly increased (<30 mg/g or <3 mg/mmol)",
    "A2": "Moderately increased (30-299 mg/g or 3-29 mg/mmol)",
    "A3": "Severely increased (≥300 mg/g or ≥30 mg/mmol)",
}


def ckd_stage(egfr: float) -> str:
    if egfr >= 90:
        return "G1"
    if egfr >= 60:
        return "G2"
    if egfr >= 45:
        return "G3a"
    if egfr >= 30:
        return "G3b"
    if egfr >= 15:
        return "G4"
    return "G5"


def albuminuria_category(uacr: float) -> str:
    """KDIGO A-category from UACR in mg/g."""
    if uacr < 30:
        return "A1"
    if uacr < 300:
        return "A2"
    return "A3"


def run_ckd_stage(v: Dict[str, Any]) -> Dict[str, Any]:
    try:
        egfr = parse_number(v.get("egfr"))
        if egfr is None:
            return _err("Missing required inputs: egfr")
        uacr = convert(v.get("uacr"), canonical_unit="mg/g", analyte="uacr")
        stage = ckd_stage(egfr)
        result = {"stage": stage, "description": CKD_STAGE_DESCRIPTIONS[stage]}
        used = {"eGFR": str(egfr)}
        if uacr is not None:
            category = albuminuria_category(uacr)
            result["albuminuria_category"] = category
            result["albuminuria_description"] = ALBUMINURIA_DESCRIPTIONS[category]
            used["UACR"] = f"{uacr} mg/g"
        return _ok(result, used, ["KDIGO 2012 GFR and albuminuria categories"])
    except Exception as e:
        return _err(str(e))


# ── 5. CKD disability assessment ─────────────────────────────────────────────
# Disability percentage from the G x A matrix used for service personnel.
# Patients on renal replacement therapy (dialysis or transplant) grade 100%.

_DISABILITY_MATRIX: Dict[str, Dict[str, int]] = {
    "G1":  {"A1": 15, "A2": 40, "A3": 60},
    "G2":  {"A1": 15, "A2": 40, "A3": 60},
    "G3a": {"A1": 40, "A2": 40, "A3": 60},
    "G3b": {"A1": 60, "A2": 60, "A3": 80},
    "G4":  {"A1": 80, "A2": 80, "A3": 100},
    "G5":  {"A1": 100, "A2": 100, "A3": 100},
}

RRT_RECOMMENDATION = (
    "Patient is on Renal Replacement Therapy (Dialysis/Transplant). Disability: 100% "
    "with Constant Attendance Allowance (CAA). Regular nephrology follow-up required."
)


def disability_percentage(stage: str, category: str, on_rrt: bool = False) -> int:
    if on_rrt:
        return 100
    return _DISABILITY_MATRIX[stage][category]


def disability_recommendations(stage: str, category: str, percentage: int,
                               on_rrt: bool = False) -> List[str]:
    if on_rrt:
        return [RRT_RECOMMENDATION]

    recs = []
    if stage in ("G4", "G5"):
        recs.append("Consider referral for renal replacement therapy planning.")
        recs.append("Intensive nephrology follow-up required (monthly or more frequent).")
    elif stage in ("G3a", "G3b"):
        recs.append("Regular nephrology follow-up recommended (every 3-6 months).")
        recs.append("Monitor for CKD progression and complications.")
    else:
        recs.append("Annual nephrology review recommended.")

    if category == "A3":
        recs.append("Significant proteinuria present. Consider ACE inhibitor/ARB therapy "
                    "if not contraindicated.")
        recs.append("Strict blood pressure control essential (target <130/80 mmHg).")
    elif category == "A2":
        recs.append("Moderate albuminuria present. Blood pressure optimization recommended.")

    if percentage >= 60:
        recs.append(f"High disability percentage ({percentage}%). Consider medical board "
                    f"review for employment restrictions.")
    elif percentage >= 40:
        recs.append(f"Moderate disability ({percentage}%). Regular monitoring and functional "
                    f"assessment recommended.")

    recs.append("Maintain CKD-appropriate diet (low sodium, appropriate protein restriction).")
    recs.append("Avoid nephrotoxic medications (NSAIDs, contrast agents) when possible.")
    return recs


def assess_disability(egfr: float, uacr: float, on_rrt: bool = False) -> DisabilityAssessment:
    """Grade CKD disability from eGFR (mL/min/1.73m²) and UACR (mg/g)."""
    stage = ckd_stage(egfr)
    category = albuminuria_category(uacr)
    percentage = disability_percentage(stage, category, on_rrt)
    return DisabilityAssessment(
        egfr=egfr,
        ckd_stage=stage,
        ckd_stage_description=CKD_STAGE_DESCRIPTIONS[stage],
        albuminuria_category=category,
        albuminuria_description=ALBUMINURIA_DESCRIPTIONS[category],
        disability_percentage=percentage,
        on_rrt=on_rrt,
        recommendations=disability_recommendations(stage, category, percentage, on_rrt),
    )


def run_disability_assessment(v: Dict[str, Any]) -> Dict[str, Any]:
    """eGFR is taken directly, or computed from age, sex and serum creatinine."""
    try:
        uacr = convert(v.get("uacr"), canonical_unit="mg/g", analyte="uacr")
        egfr = parse_number(v.get("egfr"))
        log = []
        used = {}
        if egfr is None:
            missing = _missing(v, "age", "serum_creatinine")
            sex = parse_sex(v.get("sex"))
            if sex is None:
                missing.append("sex")
            if uacr is None:
                missing.append("uacr")
            if missing:
                return _err(f"Missing required inputs: egfr or ({', '.join(missing)})")
            age = parse_number(v.get("age"))
            cr = convert(v.get("serum_creatinine"), canonical_unit="mg/dL", analyte="creatinine")
            if cr <= 0:
                return _err("Serum creatinine must be > 0")
            egfr = ckd_epi_2021(age, sex, cr)
            used.update({"age": str(age), "sex": sex, "creatinine": f"{cr} mg/dL"})
            log.append(f"eGFR {egfr} from CKD-EPI 2021")
        elif uacr is None:
            return _err("Missing required inputs: uacr")
        if uacr < 0:
            return _err("UACR must be >= 0")

        on_rrt = parse_bool(v.get("on_rrt", False))
        assessment = assess_disability(egfr, uacr, on_rrt)
        used.update({"eGFR": str(egfr), "UACR": f"{uacr} mg/g", "on_rrt": str(on_rrt)})
        log.append("KDIGO G x A disability matrix"
                   + ("; renal replacement therapy grades 100%" if on_rrt else ""))
        return _ok(assessment.model_dump(), used, log)
    except Exception as e:
        return _err(str(e))


# ── 6. BMI ───────────────────────────────────────────────────────────────────

def body_mass_index(weight_kg: float, height_cm: float) -> float:
    """kg/m², rounded to 2 decimals."""
    ht_m = height_cm / 100
    return round(weight_kg / (ht_m * ht_m), 2)


def run_bmi(v: Dict[str, Any]) -> Dict[str, Any]:
    try:
        missing = _missing(v, "weight", "height")
        if missing:
            return _err(f"Missing required inputs: {', '.join(missing)}")
        wt = convert(v.get("weight"), canonical_unit="kg", analyte="weight")
        ht_cm = convert(v.get("height"), canonical_unit="cm", analyte="height")
        if wt <= 0 or ht_cm <= 0:
            return _err("Weight and height must be > 0")
        return _ok(body_mass_index(wt, ht_cm), {"weight": f"{wt} kg", "height": f"{ht_cm} cm"},
                   ["BMI = weight / height^2"])
    except Exception as e:
        return _err(str(e))


# ── Calculator Registry ─────────────────────────────────────────────────────

def _num(id: str, label: str, unit: str = "", synonyms: Optional[List[str]] = None,
         required: bool = True, **constraints: Any) -> CalcInput:
    return CalcInput(id=id, label=label, canonical_unit=unit, synonyms=synonyms or [],
                     required=required, constraints=constraints)


_SEX_INPUT = CalcInput(id="sex", label="Sex", type="categorical", synonyms=["gender"],
                       constraints={"allowed_values": ["Male", "Female"]})


def _flag(id: str, label: str) -> CalcInput:
    return CalcInput(id=id, label=label, type="boolean", required=False)


def _make_calc_entry(calc_id: str, run_fn, title: str, description: str,
                     tags: List[str], inputs: List[CalcInput]) -> Dict[str, Any]:
    return {
        "def": CalculatorDef(id=calc_id, title=title, description=description,
                             version="1.0", tags=tags, inputs=inputs),
        "run": run_fn,
    }


CALCULATORS: Dict[str, Dict[str, Any]] = {
    "ckd_epi_gfr": _make_calc_entry(
        "ckd_epi_gfr", run_ckd_epi_gfr, "CKD-EPI GFR (2021)",
        "Estimated GFR from serum creatinine, race-free 2021 equation.",
        ["laboratory", "kidney"],
        [_num("age", "Age", "years"), _SEX_INPUT,
         _num("serum_creatinine", "Serum Creatinine", "mg/dL", ["cr", "creatinine"], min=0)],
    ),
    "kfre": _make_calc_entry(
        "kfre", run_kfre, "Kidney Failure Risk Equation (4- or 8-variable)",
        "2- and 5-year risk of kidney failure for CKD G3-G5; the 8-variable equation "
        "is used when calcium, phosphate, albumin and bicarbonate are all given.",
        ["risk", "kidney"],
        [_num("age", "Age", "years"), _SEX_INPUT,
         _num("egfr", "eGFR", "mL/min/1.73m²", ["gfr"], max=59.99),
         _num("uacr", "Urine albumin-to-creatinine ratio", "mg/g", ["acr"], min=0),
         CalcInput(id="region", label="Cohort region", type="categorical", required=False,
                   constraints={"allowed_values": list(_KFRE_BASELINE_SURVIVAL)}),
         _num("calcium", "Serum Calcium", "mg/dL", ["ca"], required=False),
         _num("phosphate", "Serum Phosphate", "mg/dL", ["phos", "phosphorus"], required=False),
         _num("albumin", "Serum Albumin", "g/dL", ["alb"], required=False),
         _num("bicarbonate", "Serum Bicarbonate", "mEq/L", ["hco3", "bicarb"], required=False)],
    ),
    "prevent": _make_calc_entry(
        "prevent", run_prevent, "AHA PREVENT risk",
        "10-year total cardiovascular disease and heart failure risk; 30-year total "
        "cardiovascular disease risk below age 60.",
        ["risk", "cardiovascular"],
        [_num("age", "Age", "years"), _SEX_INPUT,
         _num("total_cholesterol", "Total Cholesterol", "mg/dL", ["tc"]),
         _num("hdl_cholesterol", "HDL Cholesterol", "mg/dL", ["hdl"]),
         _num("systolic_bp", "Systolic Blood Pressure", "mmHg", ["sbp"]),
         _num("egfr", "eGFR", "mL/min/1.73m²", ["gfr"]),
         _num("bmi", "Body Mass Index", "kg/m²"),
         _flag("smoker", "Current smoker"), _flag("diabetes", "Diabetes"),
         _flag("bp_medication", "On antihypertensive medication"),
         _flag("statin", "On statin")],
    ),
    "ckd_stage": _make_calc_entry(
        "ckd_stage", run_ckd_stage, "KDIGO CKD Stage",
        "GFR category (G1-G5) and albuminuria category (A1-A3).",
        ["kidney"],
        [_num("egfr", "eGFR", "mL/min/1.73m²", ["gfr"]),
         _num("uacr", "Urine albumin-to-creatinine ratio", "mg/g", ["acr"], required=False)],
    ),
    "disability_assessment": _make_calc_entry(
        "disability_assessment", run_disability_assessment, "CKD Disability Assessment",
        "Disability percentage from KDIGO GFR and albuminuria categories, with follow-up "
        "recommendations.",
        ["kidney", "disability"],
        [_num("egfr", "eGFR", "mL/min/1.73m²", ["gfr"], required=False),
         _num("age", "Age", "years", required=False),
         CalcInput(id="sex", label="Sex", type="categorical", synonyms=["gender"], required=False,
                   constraints={"allowed_values": ["Male", "Female"]}),
         _num("serum_creatinine", "Serum Creatinine", "mg/dL", ["cr", "creatinine"],
              required=False, min=0),
         _num("uacr", "Urine albumin-to-creatinine ratio", "mg/g", ["acr"], min=0),
         _flag("on_rrt", "On renal replacement therapy (dialysis or transplant)")],
    ),
    "bmi": _make_calc_entry(
        "bmi", run_bmi, "Body Mass Index",
        "Weight divided by height squared.",
        ["anthropometry"],
        [_num("weight", "Weight", "kg", ["wt"], min=0),
         _num("height", "Height", "cm", ["ht"], min=0)],
    ),
}

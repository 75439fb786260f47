"""
Lenient parsers for values coming out of the document store.

Clinical-data bags store numbers as strings, dates as ISO strings and flags
as "Yes"/"No".  Everything here returns ``None`` (or ``False``) for values it
cannot make sense of; nothing raises.
"""
from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def parse_number(raw: Any) -> Optional[float]:
    """Parse a finite number from a raw value or {"value": ...} dict."""
    if isinstance(raw, dict):
        return parse_number(raw.get("value"))
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        val = float(raw)
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            val = float(text)
        except ValueError:
            logger.debug(f"Ignoring non-numeric value {raw!r}")
            return None
    else:
        logger.debug(f"Ignoring value of unsupported type {type(raw).__name__}")
        return None
    if not math.isfinite(val):
        logger.debug(f"Ignoring non-finite value {raw!r}")
        return None
    return val


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, dict):
        return parse_bool(raw.get("value", False))
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw.strip().lower() in ("true", "yes", "y", "1", "current")
    if isinstance(raw, (int, float)):
        return bool(raw)
    return False


def parse_str(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get("value", ""))
    return str(raw) if raw is not None else ""


def parse_sex(raw: Any) -> Optional[str]:
    """Normalise a gender field to "Male" / "Female"."""
    sex = parse_str(raw).strip().lower()
    if sex in ("male", "m"):
        return "Male"
    if sex in ("female", "f"):
        return "Female"
    if sex:
        logger.debug(f"Unrecognised sex/gender value {raw!r}")
    return None


def parse_date(raw: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or date-time.

    Aware values are converted to UTC and returned naive so that every date
    in a record compares with every other.
    """
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, date):
        parsed = datetime(raw.year, raw.month, raw.day)
    else:
        text = parse_str(raw).strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Ignoring unparseable date {raw!r}")
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# ── Unit conversion ─────────────────────────────────────────────────────────

_UNIT_CONVERSIONS: Dict[str, Dict[str, float]] = {
    "height":      {"m": 100, "in": 2.54, "inches": 2.54, "ft": 30.48, "feet": 30.48},
    "weight":      {"lb": 1/2.20462, "lbs": 1/2.20462, "pounds": 1/2.20462, "g": 0.001},
    "creatinine":  {"µmol/l": 1/88.4, "umol/l": 1/88.4, "μmol/l": 1/88.4, "micromol/l": 1/88.4},
    "cholesterol": {"mmol/l": 38.67},
    "uacr":        {"mg/mmol": 8.84, "g/mol": 8.84, "mg/g": 1.0, "mg/gm": 1.0},
    "pressure":    {"kpa": 7.50062},
    "calcium":     {"mmol/l": 4.008},
    "phosphate":   {"mmol/l": 3.097},
    "albumin":     {"g/l": 0.1},
    "bicarbonate": {"mmol/l": 1.0, "meq/l": 1.0},
}


def convert(raw: Any, unit: Optional[str] = None, canonical_unit: str = "",
            analyte: str = "") -> Optional[float]:
    """Parse a numeric value and convert it to the canonical unit if needed.

    Handles:
      - {"value": N, "unit": U} → unit taken from the dict
      - bare numbers / numeric strings → ``unit`` argument, e.g. an
        investigation's unit column; no unit means canonical
    Unknown units fall back to the value unchanged.
    """
    if isinstance(raw, dict):
        unit = raw.get("unit") or unit
    val = parse_number(raw)
    if val is None or not unit:
        return val

    unit_lower = unit.strip().lower()
    if unit_lower == canonical_unit.lower():
        return val

    factor = _UNIT_CONVERSIONS.get(analyte, {}).get(unit_lower)
    if factor is not None:
        return val * factor
    return val

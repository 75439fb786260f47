"""
Runs registered calculators by id and wraps their output in result models.
"""
from __future__ import annotations

import logging
from typing import Any

from .calculators import CALCULATORS
from .models import CalcInfoResult, ExecuteCalcResult

logger = logging.getLogger(__name__)


def list_calculators() -> list[dict[str, str]]:
    return [
        {
            "id": cid,
            "title": c["def"].title,
            "description": c["def"].description,
            "version": c["def"].version,
        }
        for cid, c in CALCULATORS.items()
    ]


def _resolve_calc_id(input_id: str) -> str:
    """Exact match first, then case-insensitive; otherwise returned unchanged."""
    if input_id in CALCULATORS:
        return input_id
    input_lower = input_id.lower()
    for cid in CALCULATORS:
        if cid.lower() == input_lower:
            return cid
    return input_id


def calc_info(calc_id: str) -> CalcInfoResult:
    """Input schema for a calculator; raises ValueError for unknown ids."""
    resolved = _resolve_calc_id(calc_id)
    if resolved not in CALCULATORS:
        raise ValueError(f"Calculator '{calc_id}' not found")
    calc_def = CALCULATORS[resolved]["def"]
    return CalcInfoResult(
        calc_id=resolved,
        title=calc_def.title,
        description=calc_def.description,
        version=calc_def.version,
        tags=calc_def.tags,
        inputs=[inp.model_dump() for inp in calc_def.inputs],
    )


def run(calc_id: str, variables: dict[str, Any]) -> ExecuteCalcResult:
    """
    Execute a calculator.

    Parameters
    ----------
    calc_id   : the calculator identifier
    variables : {field_id: value or {"value": ..., "unit": ...}}

    Returns
    -------
    ExecuteCalcResult; failures are reported in ``errors``, never raised.
    """
    resolved = _resolve_calc_id(calc_id)
    if resolved not in CALCULATORS:
        return ExecuteCalcResult(success=False, errors=[f"Calculator '{calc_id}' not found"])

    entry = CALCULATORS[resolved]
    known = {inp.id for inp in entry["def"].inputs}
    warnings = [f"Unrecognised field ignored: {k}" for k in variables if k not in known]

    try:
        data = entry["run"](variables)
    except Exception as e:
        logger.warning(f"Calculator {resolved} raised: {e}")
        return ExecuteCalcResult(success=False, errors=[f"Calculation failed: {e}"],
                                 warnings=warnings)

    return ExecuteCalcResult(
        success=data.get("success", False),
        outputs=data.get("outputs"),
        errors=data.get("errors", []),
        warnings=warnings + data.get("warnings", []),
        audit_trace=data.get("audit_trace"),
    )

from __future__ import annotations

import math
import numbers
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from .calculator import CalcResult, CalculationSkipped
from .compliance import ComplianceResult
from .definitions import DefinitionResult
from .schema import ValidationError

SUMMARY_VERSION = "1.0"


def _iso_utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, numbers.Real):
        num = float(value)
        return num if math.isfinite(num) else None
    if isinstance(value, Mapping):
        return {str(k): _json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    return str(value)


def _skipped_entry(skip: CalculationSkipped) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "output": skip.output,
        "formula": skip.formula,
        "reason": skip.reason,
    }
    if skip.missing:
        entry["missing"] = list(skip.missing)
    if skip.detail:
        entry["detail"] = skip.detail
    return entry


def build_summary(
    test_type: str,
    inputs: Mapping[str, Any],
    result: CalcResult | DefinitionResult,
    compliance: ComplianceResult | None,
    *,
    errors: Sequence[ValidationError] = (),
) -> dict:
    """
    Final ``summary_json`` for a test report. Values that are not finite
    numbers are written as null.
    """
    if not isinstance(test_type, str) or not test_type.strip():
        raise ValueError("test_type is required")

    if isinstance(result, DefinitionResult):
        calculated = result.calculated
    else:
        calculated = result.values

    return {
        "version": SUMMARY_VERSION,
        "generated_at": _iso_utc_now(),
        "test_type": test_type.strip(),
        "inputs": _json_value(dict(inputs)),
        "calculated": _json_value(dict(calculated)),
        "skipped": [_skipped_entry(s) for s in result.skipped],
        "compliance": (
            {"status": compliance.status, "reason": compliance.reason}
            if compliance is not None
            else None
        ),
        "validation_errors": [
            {"field": e.field, "reason": e.reason, "message": e.message} for e in errors
        ],
    }

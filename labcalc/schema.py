from __future__ import annotations

import datetime as dt
import math
import numbers
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .expression import FormulaError, list_variables, parse_formula

COLUMN_TYPES = ("text", "number", "select", "date")

REASON_REQUIRED = "required"
REASON_OUT_OF_RANGE = "out_of_range"
REASON_TYPE_MISMATCH = "type_mismatch"


@dataclass(frozen=True)
class TemplateColumn:
    id: str
    label: str
    type: str = "text"
    required: bool = False
    locked: bool = False
    unit: str | None = None
    decimals: int | None = None
    min: float | None = None
    max: float | None = None
    options: tuple[str, ...] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TemplateColumn":
        options = data.get("options")
        decimals = data.get("decimals")
        return cls(
            id=str(data.get("id") or "").strip(),
            label=str(data.get("label") or data.get("id") or ""),
            type=str(data.get("type") or "text"),
            required=bool(data.get("required", False)),
            locked=bool(data.get("locked", False)),
            unit=data.get("unit"),
            decimals=int(decimals) if decimals is not None else None,
            min=_opt_float(data.get("min"), "min"),
            max=_opt_float(data.get("max"), "max"),
            options=tuple(str(o) for o in options) if options is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "label": self.label, "type": self.type}
        if self.required:
            out["required"] = True
        if self.locked:
            out["locked"] = True
        for key in ("unit", "decimals", "min", "max"):
            val = getattr(self, key)
            if val is not None:
                out[key] = val
        if self.options is not None:
            out["options"] = list(self.options)
        return out


@dataclass(frozen=True)
class TemplateSchema:
    columns: tuple[TemplateColumn, ...]
    locked: tuple[str, ...] = ()
    required: tuple[str, ...] = ()
    named_ranges: dict[str, tuple[str, ...]] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TemplateSchema":
        ranges = data.get("named_ranges")
        return cls(
            columns=tuple(TemplateColumn.from_dict(c) for c in data.get("columns") or []),
            locked=tuple(str(x) for x in data.get("locked") or []),
            required=tuple(str(x) for x in data.get("required") or []),
            named_ranges=(
                {str(k): tuple(str(x) for x in v) for k, v in ranges.items()}
                if ranges is not None
                else None
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "columns": [c.to_dict() for c in self.columns],
            "locked": list(self.locked),
            "required": list(self.required),
        }
        if self.named_ranges is not None:
            out["named_ranges"] = {k: list(v) for k, v in self.named_ranges.items()}
        return out

    @property
    def column_ids(self) -> list[str]:
        return [c.id for c in self.columns]

    def column(self, column_id: str) -> TemplateColumn | None:
        for col in self.columns:
            if col.id == column_id:
                return col
        return None

    def is_required(self, column: TemplateColumn) -> bool:
        return column.required or column.id in self.required

    def is_locked(self, column: TemplateColumn) -> bool:
        return column.locked or column.id in self.locked


@dataclass(frozen=True)
class TemplateRules:
    kpis: dict[str, str] | None = None
    thresholds: dict[str, float] | None = None
    pass_condition: str | None = None
    remarks: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "TemplateRules":
        data = data or {}
        kpis = data.get("kpis")
        thresholds = data.get("thresholds")
        return cls(
            kpis={str(k): str(v) for k, v in kpis.items()} if kpis is not None else None,
            thresholds=dict(thresholds) if thresholds is not None else None,
            pass_condition=data.get("pass_condition"),
            remarks=data.get("remarks"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.kpis is not None:
            out["kpis"] = dict(self.kpis)
        if self.thresholds is not None:
            out["thresholds"] = dict(self.thresholds)
        if self.pass_condition is not None:
            out["pass_condition"] = self.pass_condition
        if self.remarks is not None:
            out["remarks"] = self.remarks
        return out


@dataclass(frozen=True)
class SchemaError:
    """Template definition problem (author/config error)."""

    code: str
    message: str
    column: str | None = None


@dataclass(frozen=True)
class ValidationError:
    """Row value problem (user input), reported per field."""

    field: str
    reason: str
    message: str = ""


class TemplateLoadError(ValueError):
    def __init__(self, errors: Sequence[SchemaError]):
        self.errors = list(errors)
        super().__init__("; ".join(e.message for e in self.errors))


def _opt_float(value: Any, field: str) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field} must be a number") from exc


def validate_rules(rules: TemplateRules, schema: TemplateSchema | None = None) -> list[SchemaError]:
    errors: list[SchemaError] = []
    kpis = rules.kpis or {}
    thresholds = rules.thresholds or {}
    known = set(kpis)
    if schema is not None:
        known.update(schema.column_ids)

    for name, formula in kpis.items():
        try:
            parse_formula(formula, aggregates=True)
        except FormulaError as exc:
            errors.append(SchemaError("invalid_kpi", f"KPI {name}: {exc}"))
            continue
        if schema is not None:
            for ref in list_variables(formula, aggregates=True):
                if ref not in known:
                    errors.append(
                        SchemaError("unknown_kpi_reference", f"KPI {name} references unknown column {ref}")
                    )

    for name, value in thresholds.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            errors.append(SchemaError("invalid_threshold", f"Threshold {name} must be a finite number"))

    if rules.pass_condition:
        try:
            parse_formula(rules.pass_condition, condition=True)
        except FormulaError as exc:
            errors.append(SchemaError("invalid_pass_condition", f"pass_condition: {exc}"))
        else:
            for ref in list_variables(rules.pass_condition, condition=True):
                if ref not in kpis and ref not in thresholds:
                    errors.append(
                        SchemaError(
                            "unknown_condition_name",
                            f"pass_condition references {ref}, which is neither a KPI nor a threshold",
                        )
                    )
    return errors


def validate_schema(schema: TemplateSchema, rules: TemplateRules | None = None) -> list[SchemaError]:
    """
    Internal consistency of a template. Returns every problem found; an empty
    list means the template can be saved.
    """
    errors: list[SchemaError] = []
    seen: set[str] = set()
    for col in schema.columns:
        if not col.id:
            errors.append(SchemaError("missing_id", f"Column {col.label!r} has no id"))
            continue
        if col.id in seen:
            errors.append(SchemaError("duplicate_column", f"Duplicate column id: {col.id}", col.id))
        seen.add(col.id)
        if col.type not in COLUMN_TYPES:
            errors.append(SchemaError("unknown_type", f"{col.id}: unknown type {col.type!r}", col.id))
        if col.type == "select" and not col.options:
            errors.append(SchemaError("missing_options", f"{col.id}: select column needs options", col.id))
        if col.type != "select" and col.options:
            errors.append(
                SchemaError("unexpected_options", f"{col.id}: options are only allowed on select columns", col.id)
            )
        if col.min is not None and col.max is not None and col.min > col.max:
            errors.append(SchemaError("invalid_bounds", f"{col.id}: min is greater than max", col.id))

    for column_id in schema.locked:
        if column_id not in seen:
            errors.append(SchemaError("unknown_locked", f"locked references unknown column {column_id}", column_id))
    for column_id in schema.required:
        if column_id not in seen:
            errors.append(
                SchemaError("unknown_required", f"required references unknown column {column_id}", column_id)
            )
    for range_name, ids in (schema.named_ranges or {}).items():
        for column_id in ids:
            if column_id not in seen:
                errors.append(
                    SchemaError(
                        "unknown_named_range_column",
                        f"named range {range_name} references unknown column {column_id}",
                        column_id,
                    )
                )

    if rules is not None:
        errors.extend(validate_rules(rules, schema))
    return errors


def load_template(
    schema_json: Mapping[str, Any],
    rules_json: Mapping[str, Any] | None = None,
) -> tuple[TemplateSchema, TemplateRules | None]:
    """
    Build models from stored JSON and fail fast on any definition problem.
    Raises TemplateLoadError carrying the SchemaError list.
    """
    try:
        schema = TemplateSchema.from_dict(schema_json)
        rules = TemplateRules.from_dict(rules_json) if rules_json is not None else None
    except (TypeError, ValueError, AttributeError) as exc:
        raise TemplateLoadError([SchemaError("malformed_template", str(exc))]) from exc
    errors = validate_schema(schema, rules)
    if errors:
        raise TemplateLoadError(errors)
    return schema, rules


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float):
        return math.isnan(value)
    return False


def to_number(value: Any) -> float | None:
    """Finite float from a number or numeric text; None otherwise."""
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        num = float(value)
    elif isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def _is_date(value: Any) -> bool:
    if isinstance(value, dt.date):
        return True
    if not isinstance(value, str):
        return False
    try:
        dt.date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def _check_value(col: TemplateColumn, value: Any) -> ValidationError | None:
    if col.type == "number":
        num = to_number(value)
        if num is None:
            return ValidationError(col.id, REASON_TYPE_MISMATCH, f"{col.label} must be a number")
        if (col.min is not None and num < col.min) or (col.max is not None and num > col.max):
            lo = col.min if col.min is not None else "-inf"
            hi = col.max if col.max is not None else "inf"
            return ValidationError(col.id, REASON_OUT_OF_RANGE, f"{col.label} must be between {lo} and {hi}")
        return None
    if col.type == "select":
        if not isinstance(value, str) or value not in (col.options or ()):
            return ValidationError(col.id, REASON_TYPE_MISMATCH, f"{col.label} must be one of the listed options")
        return None
    if col.type == "date":
        if not _is_date(value):
            return ValidationError(col.id, REASON_TYPE_MISMATCH, f"{col.label} must be a date (YYYY-MM-DD)")
        return None
    if not isinstance(value, str):
        return ValidationError(col.id, REASON_TYPE_MISMATCH, f"{col.label} must be text")
    return None


def validate_row(schema: TemplateSchema, row: Mapping[str, Any]) -> list[ValidationError]:
    """
    Check one data row against the schema. Every violation is collected; a
    blank required field yields exactly one ``required`` error and no further
    checks. Keys that are not schema columns are ignored.
    """
    errors: list[ValidationError] = []
    for col in schema.columns:
        value = row.get(col.id)
        if is_blank(value):
            if schema.is_required(col):
                errors.append(ValidationError(col.id, REASON_REQUIRED, f"{col.label} is required"))
            continue
        problem = _check_value(col, value)
        if problem is not None:
            errors.append(problem)
    return errors


def validate_rows(schema: TemplateSchema, rows: Sequence[Mapping[str, Any]]) -> dict[int, list[ValidationError]]:
    """Row index -> errors, for rows that have at least one error."""
    out: dict[int, list[ValidationError]] = {}
    for idx, row in enumerate(rows):
        errors = validate_row(schema, row)
        if errors:
            out[idx] = errors
    return out

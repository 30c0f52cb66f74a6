from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pandas as pd

from labcalc.schema import ValidationError, TemplateSchema, validate_row


@dataclass(frozen=True)
class ValidationResult:
    errors: list[str]
    warnings: list[str]
    row_status: dict[int, str]
    row_errors: dict[int, list[ValidationError]]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


def _cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    return value


def dataframe_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Editor rows as plain dicts; NaN/NaT cells become None."""
    return [{str(k): _cell(v) for k, v in row.items()} for row in df.to_dict(orient="records")]


def empty_template_frame(schema: TemplateSchema, rows: int = 5) -> pd.DataFrame:
    return pd.DataFrame([{c.id: None for c in schema.columns} for _ in range(rows)], columns=schema.column_ids)


def drop_blank_rows(df: pd.DataFrame) -> pd.DataFrame:
    """Rows the operator never touched are not data."""
    if df.empty:
        return df
    mask = df.apply(lambda r: any(_cell(v) not in (None, "") for v in r.values), axis=1)
    return df[mask]


def validate_template_rows(df: pd.DataFrame, schema: TemplateSchema) -> ValidationResult:
    """
    Validates data-entry grid rows against a template schema.

    Columns that are not in the schema are ignored; schema columns that are
    missing from the frame count as blank.
    """
    errors: list[str] = []
    warnings: list[str] = []
    statuses: dict[int, str] = {}
    per_row: dict[int, list[ValidationError]] = {}

    unknown = [c for c in df.columns if c not in schema.column_ids]
    if unknown:
        warnings.append("ignored columns: " + ", ".join(str(c) for c in unknown))

    first_col = schema.columns[0].id if schema.columns else None
    for idx, row in zip(df.index, dataframe_rows(df)):
        row_errors = validate_row(schema, row)
        label = str(row.get(first_col) or "").strip() if first_col else ""
        label = label or f"row#{idx}"
        if row_errors:
            errors.append(f"{label}: " + "; ".join(e.message for e in row_errors))
            statuses[idx] = "INVALID"
            per_row[idx] = row_errors
        else:
            statuses[idx] = "OK"

    return ValidationResult(errors=errors, warnings=warnings, row_status=statuses, row_errors=per_row)

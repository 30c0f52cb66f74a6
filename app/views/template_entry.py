from __future__ import annotations

import json

import pandas as pd
import streamlit as st

from app import db
from app.ui_components import compliance_chip, status_chip
from app.validation import dataframe_rows, drop_blank_rows, empty_template_frame, validate_template_rows
from labcalc.calculator import round_for_display
from labcalc.compliance import REPORT_COMPUTED, REPORT_PENDING, evaluate_rules, next_report_status
from labcalc.schema import TemplateLoadError, TemplateSchema, load_template
from labcalc.summary import build_summary
from labcalc.templates import EXAMPLE_TEMPLATES


def _column_config(schema: TemplateSchema) -> dict:
    config = {}
    for col in schema.columns:
        label = col.label + (f" ({col.unit})" if col.unit else "")
        disabled = schema.is_locked(col)
        required = schema.is_required(col)
        if col.type == "number":
            fmt = f"%.{col.decimals}f" if col.decimals is not None else None
            config[col.id] = st.column_config.NumberColumn(
                label, min_value=col.min, max_value=col.max, format=fmt, required=required, disabled=disabled
            )
        elif col.type == "select":
            config[col.id] = st.column_config.SelectboxColumn(
                label, options=list(col.options or ()), required=required, disabled=disabled
            )
        elif col.type == "date":
            config[col.id] = st.column_config.DateColumn(label, required=required, disabled=disabled)
        else:
            config[col.id] = st.column_config.TextColumn(label, required=required, disabled=disabled)
    return config


def _load_selected(state: dict):
    source = st.radio("Template source", ["Built-in", "JSON"], horizontal=True)
    if source == "Built-in":
        name = st.selectbox("Template", list(EXAMPLE_TEMPLATES))
        data = EXAMPLE_TEMPLATES[name]
        return name, data["schema"], data.get("rules")

    raw = st.text_area("Template JSON ({\"test_type\", \"schema\", \"rules\"})", key="template_json", height=200)
    if not raw.strip():
        return None, None, None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        st.error(f"Invalid JSON: {exc}")
        return None, None, None
    if not isinstance(data, dict) or "schema" not in data:
        st.error("Template JSON must be an object with a schema key")
        return None, None, None
    return str(data.get("test_type") or "custom"), data["schema"], data.get("rules")


def render(conn, state: dict) -> None:
    st.header("Template Data Entry")

    name, schema_json, rules_json = _load_selected(state)
    if schema_json is None:
        st.info("Select a template or paste one as JSON.")
        return

    try:
        schema, rules = load_template(schema_json, rules_json)
    except TemplateLoadError as exc:
        st.error("Template has definition errors:")
        for err in exc.errors:
            st.write(f"- [{err.code}] {err.message}")
        return

    frames = state.setdefault("template_frames", {})
    if name not in frames or list(frames[name].columns) != schema.column_ids:
        frames[name] = empty_template_frame(schema)

    edited = st.data_editor(
        frames[name],
        column_config=_column_config(schema),
        num_rows="dynamic",
        use_container_width=True,
        key=f"editor.{name}",
    )
    frames[name] = edited
    df = drop_blank_rows(pd.DataFrame(edited))

    validation = validate_template_rows(df, schema)
    for warning in validation.warnings:
        st.warning(warning)
    if validation.has_errors:
        st.error("Fix the highlighted rows:")
        for err in validation.errors:
            st.write(f"- {err}")

    if rules is None:
        st.caption("This template has no KPI rules.")
        return

    rows = dataframe_rows(df)
    kpis, compliance = evaluate_rules(rules, rows)

    st.subheader("KPIs")
    kpi_cols = st.columns(max(1, len(rules.kpis or {})))
    for col, kpi_name in zip(kpi_cols, rules.kpis or {}):
        with col:
            value = round_for_display(kpis.values.get(kpi_name), 3)
            st.metric(kpi_name, "n/a" if value is None else value)
    for skip in kpis.skipped:
        st.caption(f"{skip.output}: skipped ({skip.reason})")

    compliance_chip(compliance)
    if rules.remarks:
        st.caption(rules.remarks)

    new_status = next_report_status(
        REPORT_PENDING,
        required_present=bool(rows) and not validation.has_errors,
        compliance=compliance,
    )
    status_chip("Report", new_status)

    save_disabled = conn is None or state.get("mode_effective") != "EDIT" or new_status == REPORT_PENDING
    if st.button("Save report", disabled=save_disabled):
        inputs = {"rows": rows}
        errors = [e for errs in validation.row_errors.values() for e in errs]
        summary = build_summary(name, inputs, kpis, compliance, errors=errors)
        try:
            with db.tx(conn):
                report_id = db.save_report(conn, summary, status=REPORT_COMPUTED, title=name)
                if new_status != REPORT_COMPUTED:
                    db.save_report(conn, summary, status=new_status, report_id=report_id)
        except ValueError as exc:
            st.error(str(exc))
            return
        st.success(f"Saved report {report_id[:8]} ({new_status})")

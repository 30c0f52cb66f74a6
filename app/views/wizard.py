from __future__ import annotations

import streamlit as st

from app import db
from app.ui_components import compliance_chip, status_chip
from labcalc.calculator import round_for_display
from labcalc.compliance import REPORT_COMPUTED, REPORT_PENDING, next_report_status
from labcalc.definitions import (
    NUMERIC_FIELD_TYPES,
    TEST_DEFINITIONS,
    TestDefinition,
    TestField,
    can_advance,
    evaluate_definition,
    validate_step,
)
from labcalc.summary import build_summary


def _wizard_state(state: dict, test_type: str) -> dict:
    wizards = state.setdefault("wizards", {})
    return wizards.setdefault(test_type, {"step": 0, "data": {}, "report_id": None, "status": REPORT_PENDING})


def _render_field(test_field: TestField, data: dict, key_prefix: str) -> None:
    key = f"{key_prefix}.{test_field.key}"
    label = test_field.label + (f" ({test_field.unit})" if test_field.unit else "")
    if test_field.required:
        label += " *"
    current = data.get(test_field.key)
    if test_field.type in NUMERIC_FIELD_TYPES:
        step = 10 ** -(test_field.precision or 2)
        data[test_field.key] = st.number_input(
            label,
            value=current,
            step=step,
            format=f"%.{test_field.precision or 2}f",
            help=test_field.help_text,
            placeholder=test_field.placeholder,
            key=key,
        )
    elif test_field.type == "select":
        options = list(test_field.options or ())
        idx = options.index(current) if current in options else None
        data[test_field.key] = st.selectbox(label, options, index=idx, help=test_field.help_text, key=key)
    elif test_field.type == "date":
        data[test_field.key] = st.date_input(label, value=current, help=test_field.help_text, key=key)
    elif test_field.type == "textarea":
        data[test_field.key] = st.text_area(label, value=current or "", help=test_field.help_text, key=key)
    else:
        data[test_field.key] = st.text_input(
            label,
            value=current or "",
            placeholder=test_field.placeholder or "",
            help=test_field.help_text,
            key=key,
        )


def _render_calculated(definition: TestDefinition, step_index: int, calculated: dict[str, float]) -> None:
    step = definition.steps[step_index]
    if not step.calculations:
        return
    st.markdown("**Calculated values**")
    for output in step.calculations:
        value = calculated.get(output)
        if value is None:
            st.write(f"{output}: n/a")
        else:
            st.write(f"{output}: {round_for_display(value, step.output_decimals(output))}")


def save_wizard_report(conn, summary: dict, status: str, report_id: str | None, title: str | None) -> str:
    """
    Insert the report (as computed) on first save, then move it to ``status``.
    A remembered id whose report was deleted elsewhere is treated as a first save.
    """
    if report_id is not None and db.load_report(conn, report_id) is None:
        report_id = None
    if report_id is None:
        report_id = db.save_report(conn, summary, status=REPORT_COMPUTED, title=title)
        if status == REPORT_COMPUTED:
            return report_id
    db.save_report(conn, summary, status=status, report_id=report_id, title=title)
    return report_id


def render(conn, state: dict) -> None:
    st.header("Test Wizard")

    labels = {d.title: d.test_type for d in TEST_DEFINITIONS.values()}
    choice = st.selectbox("Test type", list(labels))
    definition = TEST_DEFINITIONS[labels[choice]]
    wiz = _wizard_state(state, definition.test_type)
    data = wiz["data"]

    steps = [f"{i + 1}) {s.title}" for i, s in enumerate(definition.steps)]
    last = len(steps) - 1

    cols = st.columns([2, 1, 1])
    with cols[0]:
        st.progress((wiz["step"] + 1) / len(steps))
        st.caption(" → ".join([f"[{s}]" if i == wiz["step"] else s for i, s in enumerate(steps)]))
    with cols[1]:
        if st.button("Back", disabled=wiz["step"] == 0):
            wiz["step"] = max(0, wiz["step"] - 1)
            st.rerun()
    with cols[2]:
        next_disabled = wiz["step"] == last or not can_advance(definition, wiz["step"], data)
        next_reason = None
        if wiz["step"] < last and next_disabled:
            next_reason = "Fill in the required fields and fix the errors below."
        if st.button("Next", disabled=next_disabled):
            wiz["step"] = min(last, wiz["step"] + 1)
            st.rerun()
        if next_reason:
            st.caption(next_reason)

    st.divider()

    step = definition.steps[wiz["step"]]
    st.subheader(step.title)
    st.caption(step.description)
    for test_field in step.fields:
        _render_field(test_field, data, f"{definition.test_type}.{step.id}")

    for err in validate_step(step, data):
        if err.reason != "required":
            st.error(err.message)

    result = evaluate_definition(definition, data)
    _render_calculated(definition, wiz["step"], result.calculated)

    if wiz["step"] != last:
        return

    st.divider()
    compliance_chip(result.compliance)
    all_errors = [e for s in definition.steps for e in validate_step(s, data)]
    required_present = not any(e.reason == "required" for e in all_errors)
    new_status = next_report_status(
        REPORT_PENDING, required_present=required_present, compliance=result.compliance
    )
    status_chip("Report", new_status)

    title = st.text_input("Report title", key=f"{definition.test_type}.title")
    save_disabled = conn is None or state.get("mode_effective") != "EDIT" or new_status == REPORT_PENDING
    if st.button("Save report", disabled=save_disabled):
        summary = build_summary(definition.test_type, data, result, result.compliance, errors=all_errors)
        try:
            with db.tx(conn):
                report_id = save_wizard_report(conn, summary, new_status, wiz.get("report_id"), title or None)
        except ValueError as exc:
            st.error(str(exc))
            return
        wiz["report_id"] = report_id
        wiz["status"] = new_status
        st.success(f"Saved report {report_id[:8]} ({new_status})")

from __future__ import annotations

import json

import pandas as pd
import streamlit as st

from app import db
from app.ui_components import status_chip
from labcalc.compliance import REPORT_PENDING


def render(conn, state: dict) -> None:
    st.header("Saved Reports")

    if conn is None:
        st.info("No database yet. Save a report from the wizard or template pages first.")
        return

    reports = db.list_reports(conn)
    if not reports:
        st.info("No reports saved.")
        return

    st.dataframe(pd.DataFrame(reports), use_container_width=True, hide_index=True)

    labels = [f"{r['test_type']} · {r['title'] or '(untitled)'} ({r['id'][:8]})" for r in reports]
    choice = st.selectbox("Report", labels)
    report = db.load_report(conn, reports[labels.index(choice)]["id"])
    if report is None:
        st.warning("Report disappeared; refresh the page.")
        return

    status_chip("Report", report["status"])
    summary = report["summary_json"]
    compliance = summary.get("compliance") or {}
    if compliance:
        st.caption(f"compliance: {compliance.get('status')} ({compliance.get('reason')})")
    st.json(summary)
    st.download_button(
        "Download summary JSON",
        data=json.dumps(summary, ensure_ascii=False, indent=2) + "\n",
        file_name=f"summary_{report['id'][:8]}.json",
        mime="application/json",
    )

    if state.get("mode_effective") != "EDIT":
        return

    st.subheader("Edit")
    cols = st.columns(2)
    with cols[0]:
        if st.button("Clear field data (back to pending)"):
            cleared = dict(summary, inputs={}, calculated={}, skipped=[], compliance=None)
            try:
                with db.tx(conn):
                    db.save_report(conn, cleared, status=REPORT_PENDING, report_id=report["id"], cleared=True)
            except ValueError as exc:
                st.error(str(exc))
            else:
                st.rerun()
    with cols[1]:
        confirm = st.checkbox("Confirm delete")
        if st.button("Delete report", disabled=not confirm):
            with db.tx(conn):
                db.delete_report(conn, report["id"])
            st.rerun()

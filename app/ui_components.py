from __future__ import annotations

import streamlit as st

from labcalc.compliance import ComplianceResult


def _status_style(status: str) -> tuple[str, str]:
    """
    Returns (bg_color, fg_color) for a status pill.
    Colors are chosen to be readable in both Streamlit light/dark themes.
    """
    s = (status or "").lower().strip()
    if s == "pass":
        return "#1f7a3a", "white"
    if s == "fail":
        return "#b91c1c", "white"
    if s == "computed":
        return "#1d4ed8", "white"
    if s == "pending":
        return "#b7791f", "white"
    return "#374151", "white"


def status_chip(label: str, status: str, *, detail: str | None = None) -> None:
    bg, fg = _status_style(status)
    title = (detail or status).replace('"', "'")
    st.markdown(
        f"""
        <span title="{title}" style="
          display:inline-block;
          padding:0.15rem 0.55rem;
          border-radius:999px;
          background:{bg};
          color:{fg};
          font-weight:600;
          font-size:0.85rem;
          line-height:1.4;
          white-space:nowrap;
        ">{label}: {status.upper()}</span>
        """,
        unsafe_allow_html=True,
    )


def compliance_chip(result: ComplianceResult) -> None:
    status_chip("Compliance", result.status, detail=result.reason)
    if result.status == "pending":
        st.caption(result.reason)

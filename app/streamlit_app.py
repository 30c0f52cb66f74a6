from __future__ import annotations

import sys
from pathlib import Path
import streamlit as st

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import db  # noqa: E402
from app.views import reports, template_entry, wizard  # noqa: E402


DEFAULT_DB_PATH = str(ROOT / "db" / "reports.sqlite")


def _init_state() -> None:
    state = st.session_state
    state.setdefault("db_path", DEFAULT_DB_PATH)
    state.setdefault("mode", "READ_ONLY")
    state.setdefault("edit_confirm", False)
    state.setdefault("wizards", {})
    state.setdefault("template_frames", {})


def main() -> None:
    st.set_page_config(page_title="Lab Test Calculations", layout="wide")
    _init_state()
    state = st.session_state

    with st.sidebar:
        st.title("Lab Test Calculations")
        st.text_input("DB path", key="db_path")
        st.radio("Mode", ["READ_ONLY", "EDIT"], key="mode")
        if state["mode"] == "EDIT":
            st.checkbox("I understand this will modify DB", key="edit_confirm")
        mode_effective = "EDIT" if state["mode"] == "EDIT" and state["edit_confirm"] else "READ_ONLY"
        state["mode_effective"] = mode_effective

        page = st.radio("Navigation", ["Test Wizard", "Template Entry", "Reports"])

    db_path = Path(state["db_path"])
    conn = None
    try:
        if mode_effective == "EDIT":
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = db.connect(db_path)
            db.ensure_schema(conn)
            conn.commit()
        elif db_path.exists():
            conn = db.connect(db_path, read_only=True)
    except Exception as exc:  # pragma: no cover - UI error path
        st.error(f"Failed to connect: {exc}")
        conn = None

    pages = {
        "Test Wizard": wizard,
        "Template Entry": template_entry,
        "Reports": reports,
    }

    try:
        pages[page].render(conn, state)
    finally:
        if conn is not None:
            conn.close()


if __name__ == "__main__":
    main()

from __future__ import annotations

import contextlib
import json
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import quote

from labcalc.compliance import REPORT_PENDING, transition_report_status

REPORTS_TABLE = "test_reports"


def _db_uri(db_path: str | Path, read_only: bool) -> str:
    db_abs = Path(db_path).resolve()
    if not read_only:
        return str(db_abs)
    return f"file:{quote(str(db_abs), safe='/')}?mode=ro"


def connect(db_path: str | Path, *, read_only: bool = False) -> sqlite3.Connection:
    db_uri = _db_uri(db_path, read_only)
    conn = sqlite3.connect(db_uri, uri=read_only)
    conn.row_factory = sqlite3.Row
    return conn


@contextlib.contextmanager
def tx(conn: sqlite3.Connection) -> Iterable[sqlite3.Connection]:
    try:
        conn.execute("BEGIN")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table,),
    ).fetchone()
    return row is not None


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS test_reports (
          id TEXT PRIMARY KEY,
          test_type TEXT NOT NULL,
          title TEXT,
          status TEXT NOT NULL DEFAULT 'pending',
          summary_json TEXT NOT NULL,
          created_at TEXT NOT NULL DEFAULT (datetime('now')),
          updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
        """
    )


def _row_to_report(row: sqlite3.Row) -> dict[str, Any]:
    out = dict(row)
    out["summary_json"] = json.loads(out["summary_json"])
    return out


def save_report(
    conn: sqlite3.Connection,
    summary: dict[str, Any],
    *,
    status: str,
    report_id: str | None = None,
    title: str | None = None,
    cleared: bool = False,
) -> str:
    """
    Insert a new report or update an existing one. Status changes follow the
    report lifecycle; an illegal move raises ValueError and nothing is written.
    """
    test_type = summary.get("test_type")
    if not isinstance(test_type, str) or not test_type.strip():
        raise ValueError("summary_json has no test_type")
    text = json.dumps(summary, ensure_ascii=False, allow_nan=False)

    existing = load_report(conn, report_id) if report_id else None
    if existing is None:
        transition_report_status(REPORT_PENDING, status, cleared=cleared)
        report_id = report_id or str(uuid.uuid4())
        conn.execute(
            """
            INSERT INTO test_reports (id, test_type, title, status, summary_json)
            VALUES (?, ?, ?, ?, ?)
            """,
            (report_id, test_type, title, status, text),
        )
        return report_id

    transition_report_status(existing["status"], status, cleared=cleared)
    conn.execute(
        """
        UPDATE test_reports
        SET title = COALESCE(?, title), status = ?, summary_json = ?,
            updated_at = datetime('now')
        WHERE id = ?
        """,
        (title, status, text, report_id),
    )
    return report_id


def load_report(conn: sqlite3.Connection, report_id: str) -> dict[str, Any] | None:
    row = conn.execute(
        """
        SELECT id, test_type, title, status, summary_json, created_at, updated_at
        FROM test_reports
        WHERE id = ?
        """,
        (report_id,),
    ).fetchone()
    return _row_to_report(row) if row else None


def list_reports(conn: sqlite3.Connection, test_type: str | None = None) -> list[dict[str, Any]]:
    if not table_exists(conn, REPORTS_TABLE):
        return []
    sql = "SELECT id, test_type, title, status, created_at, updated_at FROM test_reports"
    params: tuple[Any, ...] = ()
    if test_type:
        sql += " WHERE test_type = ?"
        params = (test_type,)
    sql += " ORDER BY updated_at DESC, id ASC"
    return [dict(r) for r in conn.execute(sql, params).fetchall()]


def delete_report(conn: sqlite3.Connection, report_id: str) -> None:
    conn.execute("DELETE FROM test_reports WHERE id = ?", (report_id,))

#!/usr/bin/env python3

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from app import db  # noqa: E402


def main() -> int:
    ap = argparse.ArgumentParser(
        description="Export a saved report summary_json from SQLite (read-only)."
    )
    ap.add_argument("--db", required=True, help="Path to SQLite DB (e.g. db/reports.sqlite)")
    ap.add_argument("--report-id", default=None, help="Report id. Omit to list reports.")
    ap.add_argument("--out", default=None, help="Output JSON path (required with --report-id).")
    args = ap.parse_args()

    db_path = Path(args.db)
    if not db_path.exists():
        print(f"ERROR: DB not found: {db_path}", file=sys.stderr)
        return 2

    con = db.connect(db_path, read_only=True)
    try:
        if args.report_id is None:
            for r in db.list_reports(con):
                print(r["id"], r["test_type"], r["status"], r["title"] or "")
            return 0
        report = db.load_report(con, args.report_id)
    finally:
        con.close()

    if report is None:
        print(f"ERROR: Report not found: {args.report_id}", file=sys.stderr)
        return 2
    if not args.out:
        print("ERROR: --out is required with --report-id", file=sys.stderr)
        return 2

    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(
        json.dumps(report["summary_json"], ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

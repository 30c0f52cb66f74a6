#!/usr/bin/env python3

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]

# Allow running as "python tools/run_calc.py" (so repo root is importable)
sys.path.insert(0, str(ROOT))

from app import db  # noqa: E402
from labcalc import aggregate_strength, atterberg, cbr, proctor, sieve_analysis  # noqa: E402
from labcalc.compliance import REPORT_COMPUTED, REPORT_PENDING, evaluate_rules, next_report_status  # noqa: E402
from labcalc.definitions import TEST_DEFINITIONS, evaluate_definition, get_definition, validate_step  # noqa: E402
from labcalc.schema import load_template, validate_rows  # noqa: E402
from labcalc.summary import build_summary  # noqa: E402
from labcalc.templates import EXAMPLE_TEMPLATES  # noqa: E402

logger = logging.getLogger("run_calc")

ROW_TESTS = (
    "sieve_analysis",
    "cbr",
    "crushing_value",
    "impact_value",
    "abrasion",
    "water_absorption",
    "proctor",
    "atterberg",
)


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def run_definition(test_type: str, data: dict[str, Any]) -> tuple[dict, str]:
    definition = get_definition(test_type)
    result = evaluate_definition(definition, data)
    errors = [e for step in definition.steps for e in validate_step(step, data)]
    status = next_report_status(
        REPORT_PENDING,
        required_present=not any(e.reason == "required" for e in errors),
        compliance=result.compliance,
    )
    return build_summary(test_type, data, result, result.compliance, errors=errors), status


def run_template(test_type: str, template: dict[str, Any], data: Any) -> tuple[dict, str]:
    schema, rules = load_template(template["schema"], template.get("rules"))
    rows = data.get("rows", []) if isinstance(data, dict) else list(data)
    row_errors = validate_rows(schema, rows)
    errors = [e for idx in sorted(row_errors) for e in row_errors[idx]]
    if rules is None:
        raise ValueError(f"Template {test_type} has no rules to evaluate")
    kpis, compliance = evaluate_rules(rules, rows)
    status = next_report_status(
        REPORT_PENDING,
        required_present=bool(rows) and not errors,
        compliance=compliance,
    )
    return build_summary(test_type, {"rows": rows}, kpis, compliance, errors=errors), status


def run_row_test(kind: str, data: dict[str, Any]) -> dict[str, Any]:
    if kind == "sieve_analysis":
        res = sieve_analysis.compute_sieve_analysis(data.get("sample_weight"), data.get("rows", []))
    elif kind == "cbr":
        res = cbr.compute_cbr(
            data.get("rows", []),
            proving_ring_constant=data.get("proving_ring_constant"),
            selection=data.get("selection", cbr.SELECTION_MIN),
        )
    elif kind == "crushing_value":
        res = aggregate_strength.compute_crushing_values(data.get("samples", []))
    elif kind == "impact_value":
        res = aggregate_strength.compute_impact_value(
            data.get("sample_weight"),
            data.get("retained_before"),
            data.get("retained_after"),
            data.get("weight_after_impact"),
        )
    elif kind == "abrasion":
        res = aggregate_strength.compute_abrasion(data.get("sample_weight"), data.get("weight_after_test"))
    elif kind == "water_absorption":
        res = aggregate_strength.compute_water_absorption(data.get("samples", []))
    elif kind == "proctor":
        res = proctor.compute_proctor(data.get("rows", []))
    elif kind == "atterberg":
        res = atterberg.compute_atterberg(data.get("liquid_limit_rows", []), data.get("plastic_limit_rows", []))
    else:
        raise ValueError(f"Unknown row test: {kind}")
    return {"test_type": kind, "result": dataclasses.asdict(res)}


def main() -> int:
    ap = argparse.ArgumentParser(
        description="Evaluate a lab test (definition, template or row-set test) on a JSON input."
    )
    target = ap.add_mutually_exclusive_group(required=True)
    target.add_argument("--test-type", choices=sorted(TEST_DEFINITIONS), help="Built-in step-by-step test.")
    target.add_argument("--template", choices=sorted(EXAMPLE_TEMPLATES), help="Built-in template.")
    target.add_argument("--template-file", help="Template JSON ({test_type, schema, rules}).")
    target.add_argument("--row-test", choices=ROW_TESTS, help="Row-set calculator.")
    ap.add_argument("--input", required=True, help="Input JSON path (field values or {rows: [...]}).")
    ap.add_argument("--out", default=None, help="Output JSON path (default: stdout).")
    ap.add_argument("--db", default=None, help="Save the report summary into this SQLite DB.")
    ap.add_argument("--title", default=None, help="Report title when saving.")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log skipped calculations.")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    status = None
    try:
        data = _read_json(Path(args.input))
        if args.row_test:
            if args.db:
                raise ValueError("--db is only supported for definitions and templates")
            payload = run_row_test(args.row_test, data)
        elif args.test_type:
            payload, status = run_definition(args.test_type, data)
        else:
            if args.template:
                template = EXAMPLE_TEMPLATES[args.template]
            else:
                template = _read_json(Path(args.template_file))
            payload, status = run_template(str(template.get("test_type") or "custom"), template, data)
    except (OSError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    text = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)

    if args.db:
        db_path = Path(args.db)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = db.connect(db_path)
        try:
            db.ensure_schema(conn)
            with db.tx(conn):
                first = REPORT_PENDING if status == REPORT_PENDING else REPORT_COMPUTED
                report_id = db.save_report(conn, payload, status=first, title=args.title)
                if status != first:
                    db.save_report(conn, payload, status=status, report_id=report_id)
        finally:
            conn.close()
        logger.info("saved report %s (%s)", report_id, status)
        print(f"report_id: {report_id}", file=sys.stderr)

    if args.out:
        print("OK")
        print("out:", args.out)
        if status is not None:
            print("status:", status)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

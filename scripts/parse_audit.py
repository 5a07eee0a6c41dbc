#!/usr/bin/env python3

"""
Load data/task_samples.json and run the task parser for each sample. Outputs
a JSON and optional CSV with per-item results and a per-pattern summary.

Usage:
  python scripts/parse_audit.py \
    --input data/task_samples.json \
    --out data/task_parse_results.json \
    --csv data/task_parse_results.csv
"""

from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List


def _ensure_project_on_path():
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


_ensure_project_on_path()

from todo_nlp.parser import parse_task_details  # noqa: E402
from todo_nlp.recurrence import rule_to_rrule_string  # noqa: E402
from todo_nlp.utils import format_in_timezone, normalize_timezone  # noqa: E402


def run_one(text: str, tz: str) -> Dict[str, Any]:
    parsed = parse_task_details(text, tz)
    out = parsed.to_response()
    out["dueLocal"] = format_in_timezone(parsed.due_date, tz, "%Y-%m-%d %H:%M")
    out["rrule"] = rule_to_rrule_string(parsed.recurrence_rule)
    return out


def main():
    ap = argparse.ArgumentParser(description="Run the task parser over sample phrases")
    ap.add_argument("--input", default="data/task_samples.json", help="input JSON file")
    ap.add_argument("--out", default="data/task_parse_results.json", help="output JSON file")
    ap.add_argument("--csv", default="", help="optional CSV output path")
    ap.add_argument("--tz", default="UTC", help="timezone for items without one")
    ap.add_argument("--limit", type=int, default=0, help="limit number of items (0=all)")
    args = ap.parse_args()

    src = Path(args.input)
    data = json.loads(src.read_text(encoding="utf-8"))
    items = data.get("items") or []
    if args.limit and args.limit > 0:
        items = items[: args.limit]

    results: List[Dict[str, Any]] = []
    counts: Counter = Counter()
    for it in items:
        tz = normalize_timezone(it.get("tz") or args.tz)
        parsed = run_one(it.get("text", ""), tz)
        results.append({"id": it.get("id"), "tz": tz, **parsed})
        counts[parsed["recurrencePattern"]] += 1

    out_json = {
        "input": str(src),
        "count": len(results),
        "summary": dict(counts),
        "items": results,
    }
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(out_json, ensure_ascii=False, indent=2), encoding="utf-8")

    if args.csv:
        import csv

        csv_path = Path(args.csv)
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        fields = [
            "id",
            "originalTitle",
            "cleanedTitle",
            "dueLocal",
            "priority",
            "recurrencePattern",
            "recurrenceInterval",
            "recurrenceEndsAt",
            "rrule",
        ]
        with csv_path.open("w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=fields)
            w.writeheader()
            for r in results:
                w.writerow({k: r.get(k, "") for k in fields})

    print("Summary:")
    print(f"  total: {len(results)}")
    for pattern, n in sorted(counts.items()):
        print(f"  {pattern}: {n}")
    print(f"Wrote JSON: {out_path}")
    if args.csv:
        print(f"Wrote CSV: {args.csv}")


if __name__ == "__main__":
    main()

"""
Offline plan checker.

Loads a saved plan (the JSON blob written by the plan store), re-runs the
allocator and the requirement check against the catalog, and prints a
PASS/FAIL summary. Designed to be importable for tests and runnable as a
standalone CLI.

Usage:
    python scripts/check_plan.py --plan .plans/default.json
    python scripts/check_plan.py --plan saved.json --data path/to/data --lang it
    python scripts/check_plan.py --plan saved.json --curriculum F94
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

from data_loader import load_data
from messages import table_label
from plan_manager import PlanManager
from plan_store import deserialize_state

DEFAULT_DATA_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "data"))


def check_plan(state: dict, data: dict, curriculum: str | None = None, lang: str | None = None) -> PlanManager:
    """
    Rebuild a manager from a stored state; optionally switch curriculum (with
    migration). An explicit `lang` overrides the language saved with the plan.
    """
    manager = PlanManager(data["exams"], data["rules"])
    manager.restore(state)
    if lang and not manager.set_language(lang):
        raise ValueError(f"Unsupported language: {lang}")
    if curriculum:
        if not manager.set_curriculum(curriculum):
            raise ValueError(f"Unknown curriculum: {curriculum}")
    return manager


def summary(manager: PlanManager) -> str:
    report = manager.report
    status = "PASS" if report["is_valid"] else "FAIL"
    lines = [f"[{status}] Plan {manager.curriculum} {manager.year}: {report['total_credits']} CFU"]
    for code, counts in report["tables"].items():
        lines.append(f"  {table_label(code, manager.lang):<14} {counts['current']:>4} / {counts['min']}")
    for rule in report["special_rules"]:
        lines.append(f"  {rule['label']:<14} {rule['current']:>4} / {rule['min']}")
    for message in report["messages"]:
        lines.append(f"  [ERROR] {message}")
    return "\n".join(lines)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check a saved study plan against the degree rules.")
    parser.add_argument("--plan", required=True, help="Path to a saved plan JSON blob.")
    parser.add_argument("--data", default=DEFAULT_DATA_PATH, help="Directory with exams.csv and rules.json.")
    parser.add_argument("--curriculum", default=None, help="Re-check under another curriculum.")
    parser.add_argument("--lang", default=None, choices=["en", "it"], help="Defaults to the language saved with the plan.")
    args = parser.parse_args(argv)

    try:
        with open(args.plan, encoding="utf-8") as fh:
            state = deserialize_state(fh.read())
    except OSError as exc:
        print(f"[ERROR] Cannot read plan: {exc}", file=sys.stderr)
        return 2
    if state is None:
        print(f"[ERROR] {args.plan} is not a saved plan.", file=sys.stderr)
        return 2

    try:
        data = load_data(args.data)
        manager = check_plan(state, data, args.curriculum, args.lang)
    except (OSError, ValueError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 2

    print(summary(manager))
    return 0 if manager.report["is_valid"] else 1


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
Run the VIP promotion example: load the tree definition and execute the fixture scenarios.

Usage (from project root):
  python scripts/demo.py

Output: formatted table of results and a short evaluation report.
"""
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

TREE_PATH = ROOT / "examples" / "vip_promotion_tree.json"
SCENARIOS_PATH = ROOT / "examples" / "vip_promotion_scenarios.json"
REPORT_PATH = ROOT / "logs" / "vip-promotion-demo-report.txt"


def main() -> None:
    if not TREE_PATH.exists():
        print(f"Error: Tree definition not found at {TREE_PATH}")
        sys.exit(1)
    if not SCENARIOS_PATH.exists():
        print(f"Error: Scenarios not found at {SCENARIOS_PATH}")
        sys.exit(1)

    from promotion_engine.models.decision_tree import DecisionTree
    from promotion_engine.services.scenario_service import load_scenarios, run_all_scenarios
    from promotion_engine.utils.logging import configure_logging

    configure_logging(level="WARNING", log_to_console=False)

    tree = DecisionTree.from_definition(json.loads(TREE_PATH.read_text(encoding="utf-8")))
    cases = load_scenarios(SCENARIOS_PATH)

    print(f"Tree: {tree.name} (id={tree.id}, status={tree.status.value})")
    print(f"Running {len(cases)} scenarios...\n")

    suite = run_all_scenarios(tree, cases)

    # Table
    col_id = 22
    col_pass = 6
    col_path = 48
    col_amount = 12
    col_time = 10
    header = (
        f"{'Scenario':<{col_id}} {'Pass':<{col_pass}} {'Path':<{col_path}} "
        f"{'Discount':<{col_amount}} {'Time (ms)':<{col_time}}"
    )
    print(header)
    print("-" * (col_id + col_pass + col_path + col_amount + col_time))
    for r in suite.results:
        path = " -> ".join(r.actual_path)[: col_path - 2]
        amount = str(r.discount_amount) if r.discount_amount is not None else "-"
        print(
            f"{r.scenario_id:<{col_id}} {'Yes' if r.passed else 'No':<{col_pass}} {path:<{col_path}} "
            f"{amount:<{col_amount}} {r.execution_time_ms:<{col_time}.1f}"
        )

    print()
    print(f"Summary: {suite.passed}/{suite.total} passed")

    # Report
    lines = [
        "VIP Promotion Demo: Evaluation Report",
        "=" * 50,
        f"Tree: {TREE_PATH}",
        f"Scenarios: {SCENARIOS_PATH}",
        f"Total scenarios: {suite.total}",
        f"Passed: {suite.passed}",
        f"Failed: {suite.failed}",
        "",
        "Failed scenarios:",
    ]
    for r in suite.results:
        if not r.passed:
            lines.append(f"  - {r.scenario_id}: {r.error_message or 'path/outcome mismatch'}")
            if r.actual_path:
                lines.append(f"    Actual path: {' -> '.join(r.actual_path)}")
    REPORT_PATH.parent.mkdir(parents=True, exist_ok=True)
    REPORT_PATH.write_text("\n".join(lines), encoding="utf-8")
    tree.close()
    print(f"\nReport written to {REPORT_PATH}")
    print("Done.")


if __name__ == "__main__":
    main()

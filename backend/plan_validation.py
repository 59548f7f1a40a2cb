"""
Requirement check for an allocated plan.
No Flask or data-loader imports.
"""

from messages import DEFAULT_LANG, t
from rules import (
    FREE_ELECTIVE_TABLE,
    MANDATORY_TABLE,
    OVERFLOW_TABLE,
    get_common_rules,
    get_curriculum_rules,
    get_table_schema,
)


def _sum_label(rule: dict, lang: str) -> str:
    label = rule["label"]
    translated = t(label, lang)
    if translated != label:
        return translated
    if label == " + ".join(rule["tables"]):
        return t("sum_label", lang, tables=label)
    return label


def validate_plan(plan: list[dict], curriculum: str, rules, lang: str = DEFAULT_LANG) -> dict:
    """
    Compare table totals of an allocated plan against the rule set.

    Returns:
      {
        "total_credits": 96,                       # overflow excluded
        "tables": {"A": {"current": 12, "min": 18}, ...},
        "special_rules": [{"label", "tables", "current", "min"}],
        "is_valid": False,
        "messages": [...],  # rule order, then mandatory, then total
      }

    Malformed rule entries count as a zero minimum; this never raises.
    """
    common = get_common_rules(rules)
    report = {
        "total_credits": 0,
        "tables": {table: {"current": 0, "min": 0} for table in get_table_schema(rules, curriculum)},
        "special_rules": [],
        "is_valid": True,
        "messages": [],
    }
    tables = report["tables"]

    # Step 1: accumulate credits.
    for item in plan:
        table = str(item.get("table", "") or "")
        credits = int(item.get("credits", 0) or 0)
        tables.setdefault(table, {"current": 0, "min": 0})["current"] += credits
        if table != OVERFLOW_TABLE:
            report["total_credits"] += credits

    # Step 2: common minimums.
    mandatory_min = sum(entry["credits"] for entry in common["mandatory"])
    tables[MANDATORY_TABLE]["min"] = mandatory_min
    tables[FREE_ELECTIVE_TABLE]["min"] = common["free_elective_credits"]

    def fail(message: str) -> None:
        report["is_valid"] = False
        report["messages"].append(message)

    # Step 3: curriculum rules, in declaration order.
    for rule in get_curriculum_rules(rules, curriculum):
        if rule["kind"] == "sum":
            current = sum(tables.get(table, {}).get("current", 0) for table in rule["tables"])
            report["special_rules"].append({
                "label": _sum_label(rule, lang),
                "tables": list(rule["tables"]),
                "current": current,
                "min": rule["min_credits"],
            })
            if current < rule["min_credits"]:
                fail(t(
                    "sum_missing",
                    lang,
                    tables=" + ".join(rule["tables"]),
                    missing=rule["min_credits"] - current,
                ))
            continue

        entry = tables.setdefault(rule["table"], {"current": 0, "min": 0})
        entry["min"] = rule["min_credits"]
        if entry["current"] < entry["min"]:
            fail(t("table_missing_cfu", lang, table=rule["table"], missing=entry["min"] - entry["current"]))

    # Step 4: mandatory baseline.
    if tables[MANDATORY_TABLE]["current"] < mandatory_min:
        fail(t("mandatory_incomplete", lang))

    # Step 5: overall total.
    if report["total_credits"] < common["total_credits"]:
        fail(t("total_cfu_status", lang, current=report["total_credits"], min=common["total_credits"]))

    return report

import pandas as pd

from messages import DEFAULT_LANG, t
from rules import is_custom_item, is_fixed_item

EXPORT_COLUMNS = ["Exam", "CFU", "4 month period", "Table", "Pillar", "SubPillar", "Type", "Link"]


def _item_type(item: dict, lang: str) -> str:
    if is_fixed_item(item):
        return t("csv_mandatory", lang)
    if is_custom_item(item):
        return t("csv_extra", lang)
    return t("csv_curricolar", lang)


def plan_to_frame(plan: list[dict], exams_by_id: dict, lang: str = DEFAULT_LANG) -> pd.DataFrame:
    """One row per plan item, in plan order. Catalog fields are N/D for items with no exam."""
    missing = t("not_available", lang)
    rows = []
    for item in plan:
        exam = exams_by_id.get(item.get("exam_id"))
        rows.append({
            "Exam": item.get("name", ""),
            "CFU": int(item.get("credits", 0) or 0),
            "4 month period": exam["period"] if exam else missing,
            "Table": item.get("table", ""),
            "Pillar": exam.get("pillar", "") if exam else missing,
            "SubPillar": exam.get("subpillar", "") if exam else missing,
            "Type": _item_type(item, lang),
            "Link": exam.get("link", "") if exam else "",
        })
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_plan_csv(plan: list[dict], exams_by_id: dict, lang: str = DEFAULT_LANG) -> str:
    return plan_to_frame(plan, exams_by_id, lang).to_csv(index=False)


def export_filename(curriculum: str, year: str) -> str:
    """'F94', '2025/2026' -> 'piano_studi_F94_2025-2026.csv'"""
    return f"piano_studi_{curriculum}_{str(year).replace('/', '-')}.csv"

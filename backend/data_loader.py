import json
import os

import pandas as pd

from allocator import get_allowed_tables
from rules import get_curricula, get_variant_tables

EXAMS_FILE = "exams.csv"
RULES_FILE = "rules.json"

DEFAULT_EXAM_CREDITS = 6
DEFAULT_EXAM_PERIOD = 1

# Catalog column -> exam field. The catalog spells availability "avaiability".
_COLUMN_MAP = {
    "Exams": "name",
    "link": "link",
    "CFU": "credits",
    "Language": "language",
    "Period": "period",
    "ordinamento": "variants",
    "table": "raw_table",
    "SSD": "ssd",
    "Pillar": "pillar",
    "Subpillar": "subpillar",
    "avaiability": "availability",
    "availability": "availability",
}


def _clean_str(val) -> str:
    if val is None or (isinstance(val, float) and pd.isna(val)):
        return ""
    return str(val).strip()


def _int_or(val, default: int) -> int:
    num = pd.to_numeric(val, errors="coerce")
    if pd.isna(num) or int(num) <= 0:
        return default
    return int(num)


def _split_pipes(val) -> list[str]:
    return [part.strip() for part in _clean_str(val).split("|") if part.strip()]


def _exam_from_row(row: dict) -> dict:
    name = _clean_str(row.get("name"))
    period = _int_or(row.get("period"), DEFAULT_EXAM_PERIOD)
    return {
        "id": name,
        "name": name,
        "link": _clean_str(row.get("link")),
        "credits": _int_or(row.get("credits"), DEFAULT_EXAM_CREDITS),
        "language": _clean_str(row.get("language")),
        "period": period if period in (1, 2, 3) else DEFAULT_EXAM_PERIOD,
        "variants": [v.upper() for v in _split_pipes(row.get("variants"))],
        "raw_table": _clean_str(row.get("raw_table")),
        "ssd": _clean_str(row.get("ssd")),
        "pillar": _clean_str(row.get("pillar")),
        "subpillar": _clean_str(row.get("subpillar")),
        "availability": _clean_str(row.get("availability")),
    }


def load_exams(csv_path: str) -> list[dict]:
    """Parse the exam catalog CSV. Raises on a missing file or missing 'Exams' column."""
    exams_df = pd.read_csv(csv_path, dtype=str, skip_blank_lines=True)
    exams_df.columns = [str(c).strip() for c in exams_df.columns]
    if "Exams" not in exams_df.columns:
        raise ValueError(f"Exam catalog {csv_path} has no 'Exams' column.")

    exams_df = exams_df.rename(columns={c: f for c, f in _COLUMN_MAP.items() if c in exams_df.columns})
    exams_df["name"] = exams_df["name"].fillna("").astype(str).str.strip()
    exams_df = exams_df[exams_df["name"] != ""]

    return [_exam_from_row(row) for row in exams_df.to_dict(orient="records")]


def load_rules(json_path: str) -> dict:
    """Load the rule set. Raises on a missing file or invalid JSON."""
    with open(json_path, encoding="utf-8") as fh:
        rules = json.load(fh)
    if not isinstance(rules, dict):
        raise ValueError(f"Rule set {json_path} must be a JSON object.")
    return rules


def load_data(data_path: str) -> dict:
    """Load exam catalog and rule set from a data directory. Raises on file/schema errors."""
    exams = load_exams(os.path.join(data_path, EXAMS_FILE))
    rules = load_rules(os.path.join(data_path, RULES_FILE))

    # Duplicate names collapse to the first row.
    exams_by_id: dict[str, dict] = {}
    duplicates: list[str] = []
    for exam in exams:
        if exam["id"] in exams_by_id:
            duplicates.append(exam["id"])
            continue
        exams_by_id[exam["id"]] = exam
    if duplicates:
        print(f"[WARN] {len(duplicates)} duplicate exam name(s) in catalog; keeping first: {sorted(set(duplicates))}")
    exams = list(exams_by_id.values())

    # ── Startup data integrity checks ──────────────────────────────────────
    curricula = get_curricula(rules)
    unknown_variants = sorted({v for e in exams for v in e["variants"] if v not in curricula})
    if unknown_variants:
        print(f"[WARN] Catalog names curricula missing from the rule set: {unknown_variants}")

    known_tables = {t for c in curricula for t in get_variant_tables(rules, c)}
    unknown_tables = sorted({
        t for e in exams for t in _split_pipes(e["raw_table"]) if t not in known_tables
    })
    if unknown_tables:
        print(f"[WARN] {len(unknown_tables)} table code(s) in catalog match no curriculum: {unknown_tables}")

    for curriculum in curricula:
        placeable = sum(1 for e in exams if get_allowed_tables(e, curriculum, rules))
        print(f"[INFO] Curriculum {curriculum}: {placeable}/{len(exams)} exams have a core table")

    return {
        "exams": exams,
        "exams_by_id": exams_by_id,
        "rules": rules,
    }

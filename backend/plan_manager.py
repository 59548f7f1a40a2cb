import re
import uuid

from allocator import allocate_plan, catalog_item, get_allowed_tables, provisional_table
from availability import current_academic_year, describe_next_availability, is_available
from messages import DEFAULT_LANG, SUPPORTED_LANGS, t
from plan_validation import validate_plan
from rules import (
    DEFAULT_CURRICULUM,
    FREE_ELECTIVE_TABLE,
    ITEM_KIND_CATALOG,
    ITEM_KIND_CUSTOM,
    ITEM_KIND_FIXED,
    MANDATORY_TABLE,
    OVERFLOW_TABLE,
    get_common_rules,
    get_curricula,
    get_table_schema,
    is_custom_item,
    is_fixed_item,
    safe_int,
)


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", str(name).lower()).strip("-") or "item"


def _coerce_item(raw: dict) -> dict | None:
    """
    Normalize a stored plan item. Accepts the current shape and the legacy
    camelCase one ({examId, cfu, isCustom}); returns None when unusable.
    """
    if not isinstance(raw, dict):
        return None
    item_id = str(raw.get("id", "") or "").strip()
    if not item_id:
        return None
    exam_id = raw.get("exam_id", raw.get("examId"))
    table = str(raw.get("table", "") or "").strip() or FREE_ELECTIVE_TABLE
    kind = str(raw.get("kind", "") or "").strip().lower()
    if kind not in (ITEM_KIND_FIXED, ITEM_KIND_CUSTOM, ITEM_KIND_CATALOG):
        if table == MANDATORY_TABLE:
            kind = ITEM_KIND_FIXED
        elif raw.get("isCustom") or not exam_id:
            kind = ITEM_KIND_CUSTOM
        else:
            kind = ITEM_KIND_CATALOG
    return {
        "id": item_id,
        "exam_id": str(exam_id) if exam_id and kind == ITEM_KIND_CATALOG else None,
        "name": str(raw.get("name", "") or item_id),
        "credits": max(0, safe_int(raw.get("credits", raw.get("cfu")))),
        "table": table,
        "kind": kind,
    }


class PlanManager:
    """
    Owns one student's plan: curriculum, reference year and the ordered item list.

    Every mutation is followed by a full reallocation and revalidation, so
    `plan` and `report` are always consistent. Rejected mutations return False
    and leave the plan untouched.
    """

    def __init__(self, exams: list[dict], rules, year: str | None = None,
                 curriculum: str = DEFAULT_CURRICULUM, lang: str = DEFAULT_LANG):
        self.exams = list(exams)
        self.exams_by_id = {exam["id"]: exam for exam in self.exams}
        self.rules = rules
        self.year = year or current_academic_year()
        self.curriculum = str(curriculum).strip().upper()
        self.lang = lang if lang in SUPPORTED_LANGS else DEFAULT_LANG
        self.plan: list[dict] = []
        self.report: dict = {}
        self.refresh()

    # ── Recompute ─────────────────────────────────────────────────────────────

    def refresh(self) -> dict:
        self.plan = allocate_plan(self.plan, self.curriculum, self.rules, self.exams_by_id)
        self.report = validate_plan(self.plan, self.curriculum, self.rules, self.lang)
        return self.report

    # ── Queries ───────────────────────────────────────────────────────────────

    def _resolve_exam(self, exam_or_id):
        if isinstance(exam_or_id, dict):
            return self.exams_by_id.get(exam_or_id.get("id"))
        return self.exams_by_id.get(exam_or_id)

    def get_item(self, item_id: str) -> dict | None:
        return next((item for item in self.plan if item["id"] == item_id), None)

    def is_in_plan(self, exam_id: str) -> bool:
        return any(item.get("exam_id") == exam_id for item in self.plan)

    def is_available(self, exam) -> bool:
        return is_available(exam, self.year)

    def describe_next_availability(self, exam) -> str | None:
        return describe_next_availability(exam, self.year, self.lang)

    def get_allowed_tables(self, exam) -> list[str]:
        return get_allowed_tables(exam, self.curriculum, self.rules)

    def display_tables(self, exam) -> str:
        allowed = self.get_allowed_tables(exam)
        return " | ".join(allowed) if allowed else t("facoltativo_label", self.lang)

    def table_order(self) -> list[str]:
        return get_table_schema(self.rules, self.curriculum)

    def grouped_plan(self) -> dict[str, list[dict]]:
        groups: dict[str, list[dict]] = {table: [] for table in self.table_order()}
        for item in self.plan:
            groups.setdefault(item["table"], []).append(item)
        return groups

    # ── Mutations ─────────────────────────────────────────────────────────────

    def set_year(self, year: str) -> bool:
        self.year = year
        self.refresh()
        return True

    def set_language(self, lang: str) -> bool:
        if lang not in SUPPORTED_LANGS:
            return False
        self.lang = lang
        self.refresh()
        return True

    def set_curriculum(self, curriculum: str) -> bool:
        key = str(curriculum or "").strip().upper()
        if key not in get_curricula(self.rules):
            return False
        self.curriculum = key
        self._migrate_plan()
        self.refresh()
        return True

    def _migrate_plan(self) -> None:
        """Provisionally re-home catalog items under the new curriculum; others pass through."""
        migrated = []
        for item in self.plan:
            if is_fixed_item(item) or is_custom_item(item):
                migrated.append(item)
                continue
            exam = self.exams_by_id.get(item.get("exam_id"))
            migrated.append({**item, "table": provisional_table(exam, self.curriculum, self.rules)})
        self.plan = migrated

    def add_exam(self, exam_or_id, target_table: str | None = None) -> bool:
        exam = self._resolve_exam(exam_or_id)
        if exam is None or self.is_in_plan(exam["id"]):
            return False
        if any(item["id"] == exam["id"] for item in self.plan):
            return False
        table = target_table or provisional_table(exam, self.curriculum, self.rules)
        self.plan.append(catalog_item(exam, table))
        self.refresh()
        return True

    def add_custom_exam(self, name: str, credits) -> dict:
        item_id = f"custom-{uuid.uuid4().hex[:12]}"
        self.plan.append({
            "id": item_id,
            "exam_id": None,
            "name": str(name or "").strip() or item_id,
            "credits": max(0, safe_int(credits)),
            "table": FREE_ELECTIVE_TABLE,
            "kind": ITEM_KIND_CUSTOM,
        })
        self.refresh()
        return self.get_item(item_id)

    def remove_exam(self, item_id: str) -> bool:
        item = self.get_item(item_id)
        if item is None or is_fixed_item(item):
            return False
        self.plan = [p for p in self.plan if p["id"] != item_id]
        self.refresh()
        return True

    def move_exam(self, item_id: str, target_table: str) -> bool:
        item = self.get_item(item_id)
        target = str(target_table or "").strip()
        if item is None or not target or is_fixed_item(item):
            return False
        if not is_custom_item(item):
            allowed = self.get_allowed_tables(self.exams_by_id.get(item.get("exam_id")))
            if target not in (FREE_ELECTIVE_TABLE, OVERFLOW_TABLE) and target not in allowed:
                return False
        item["table"] = target
        self.refresh()
        return True

    def init_defaults(self) -> None:
        """Seed the plan with the baseline mandatory items. Replaces the current plan."""
        self.plan = [
            {
                "id": f"fixed-{_slug(entry['name'])}",
                "exam_id": None,
                "name": entry["name"],
                "credits": entry["credits"],
                "table": MANDATORY_TABLE,
                "kind": ITEM_KIND_FIXED,
            }
            for entry in get_common_rules(self.rules)["mandatory"]
        ]
        self.refresh()

    def reset(self) -> None:
        self.init_defaults()

    # ── Persistence shape ─────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        return {
            "year": self.year,
            "curriculum": self.curriculum,
            "lang": self.lang,
            "plan": [dict(item) for item in self.plan],
        }

    def restore(self, state: dict) -> None:
        """
        Load a stored {year, curriculum, lang, plan}. Unknown curricula and
        languages keep the current value; unusable items and duplicate exams
        are dropped.
        """
        state = state if isinstance(state, dict) else {}
        self.year = str(state.get("year") or self.year)
        lang = str(state.get("lang") or "").strip().lower()
        if lang in SUPPORTED_LANGS:
            self.lang = lang
        curriculum = str(state.get("curriculum") or "").strip().upper()
        if curriculum in get_curricula(self.rules):
            self.curriculum = curriculum

        plan: list[dict] = []
        seen_ids: set[str] = set()
        seen_exams: set[str] = set()
        for raw in state.get("plan") or []:
            item = _coerce_item(raw)
            if item is None or item["id"] in seen_ids:
                continue
            if item["exam_id"]:
                if item["exam_id"] in seen_exams:
                    continue
                seen_exams.add(item["exam_id"])
            seen_ids.add(item["id"])
            plan.append(item)
        self.plan = plan
        self.refresh()

import math

# Default curriculum used as parameter default when none is selected.
DEFAULT_CURRICULUM = "FBA"

# Special tables shared by every curriculum.
MANDATORY_TABLE = "Obbligatori"
FREE_ELECTIVE_TABLE = "Facoltativi"
OVERFLOW_TABLE = "Fuori Piano"

# Built-in table priority per curriculum (first = highest priority).
DEFAULT_VARIANT_TABLES = {
    "FBA": ["1", "2"],
    "F94": ["A", "B", "C"],
}

# Fallbacks when common_rules omits a value.
DEFAULT_TOTAL_CREDITS = 120
DEFAULT_FREE_ELECTIVE_CREDITS = 12

ITEM_KIND_FIXED = "fixed"
ITEM_KIND_CUSTOM = "custom"
ITEM_KIND_CATALOG = "catalog"


def safe_int(val, default=0):
    try:
        if val is None:
            return default
        if isinstance(val, float) and math.isnan(val):
            return default
        return int(val)
    except (TypeError, ValueError):
        return default


def _degree_requirements(rules) -> dict:
    if not isinstance(rules, dict):
        return {}
    reqs = rules.get("degree_requirements", rules)
    return reqs if isinstance(reqs, dict) else {}


def get_curricula(rules) -> list[str]:
    """Return the curriculum ids declared by the rule set, else the built-in ones."""
    programs = _degree_requirements(rules).get("programs")
    if isinstance(programs, dict) and programs:
        return [str(k).strip().upper() for k in programs]
    return list(DEFAULT_VARIANT_TABLES)


def get_common_rules(rules) -> dict:
    """
    Normalized variant-independent rules:
      {"mandatory": [{"name", "credits"}], "free_elective_credits", "total_credits"}

    Entries without a name are dropped; unparsable credit values count as 0.
    """
    common = _degree_requirements(rules).get("common_rules")
    if not isinstance(common, dict):
        common = {}

    mandatory = []
    for entry in common.get("mandatory") or []:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name", "") or "").strip()
        if not name:
            continue
        mandatory.append({
            "name": name,
            "credits": max(0, safe_int(entry.get("credits", entry.get("cfu")))),
        })

    return {
        "mandatory": mandatory,
        "free_elective_credits": max(
            0, safe_int(common.get("free_elective_credits"), DEFAULT_FREE_ELECTIVE_CREDITS)
        ),
        "total_credits": max(0, safe_int(common.get("total_credits"), DEFAULT_TOTAL_CREDITS)),
    }


def _program(rules, curriculum: str) -> dict:
    programs = _degree_requirements(rules).get("programs")
    if not isinstance(programs, dict):
        return {}
    key = str(curriculum or "").strip().upper()
    for pid, program in programs.items():
        if str(pid).strip().upper() == key and isinstance(program, dict):
            return program
    return {}


def _rule_sources(rule: dict) -> list[str]:
    sources = rule.get("sources")
    if isinstance(sources, (list, tuple)):
        return [str(s).strip() for s in sources if str(s).strip()]
    source = str(rule.get("source", "") or "").strip()
    if "+" in source:
        return [s.strip() for s in source.split("+") if s.strip()]
    return [source] if source else []


def get_curriculum_rules(rules, curriculum: str) -> list[dict]:
    """
    Return the curriculum's table rules in declaration order.

    Each item:
      {"kind": "table", "table": str, "tables": [str], "label": str, "min_credits": int}
      {"kind": "sum",   "table": None, "tables": [str, ...], "label": str, "min_credits": int}

    Rules naming no table are skipped; an unparsable minimum is 0.
    """
    out: list[dict] = []
    for rule in _program(rules, curriculum).get("curriculum_rules") or []:
        if not isinstance(rule, dict):
            continue
        tables = _rule_sources(rule)
        if not tables:
            continue
        min_credits = max(0, safe_int(rule.get("min_credits")))
        is_sum = "sources" in rule or len(tables) > 1
        if is_sum:
            label = str(rule.get("label", "") or "").strip() or " + ".join(tables)
            out.append({
                "kind": "sum",
                "table": None,
                "tables": tables,
                "label": label,
                "min_credits": min_credits,
            })
        else:
            out.append({
                "kind": "table",
                "table": tables[0],
                "tables": tables,
                "label": tables[0],
                "min_credits": min_credits,
            })
    return out


def get_variant_tables(rules, curriculum: str) -> list[str]:
    """
    Curriculum-specific tables in priority order.

    Declared `tables` list wins over the built-in default; single-table rules
    naming an unlisted table append it at the end.
    """
    key = str(curriculum or "").strip().upper()
    declared = _program(rules, key).get("tables")
    if isinstance(declared, (list, tuple)) and declared:
        tables = [str(t).strip() for t in declared if str(t).strip()]
    else:
        tables = list(DEFAULT_VARIANT_TABLES.get(key, []))

    for rule in get_curriculum_rules(rules, key):
        if rule["kind"] == "table" and rule["table"] not in tables:
            tables.append(rule["table"])
    return list(dict.fromkeys(tables))


def get_table_schema(rules, curriculum: str) -> list[str]:
    """All tables of a curriculum, in display order."""
    return [MANDATORY_TABLE, *get_variant_tables(rules, curriculum), FREE_ELECTIVE_TABLE, OVERFLOW_TABLE]


def get_table_minimums(rules, curriculum: str) -> dict[str, int]:
    """Single-table minimums; a table named twice keeps its last declaration."""
    mins: dict[str, int] = {}
    for rule in get_curriculum_rules(rules, curriculum):
        if rule["kind"] == "table":
            mins[rule["table"]] = rule["min_credits"]
    return mins


def get_sum_rules(rules, curriculum: str) -> list[dict]:
    return [r for r in get_curriculum_rules(rules, curriculum) if r["kind"] == "sum"]


def is_fixed_item(item: dict) -> bool:
    return str(item.get("kind", "")) == ITEM_KIND_FIXED


def is_custom_item(item: dict) -> bool:
    return str(item.get("kind", "")) == ITEM_KIND_CUSTOM

from rules import (
    FREE_ELECTIVE_TABLE,
    ITEM_KIND_CATALOG,
    OVERFLOW_TABLE,
    get_common_rules,
    get_sum_rules,
    get_table_minimums,
    get_variant_tables,
    is_custom_item,
    is_fixed_item,
)


def _split_raw_table(raw) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, float) and raw != raw:
        return []
    return [part.strip() for part in str(raw).split("|") if part.strip()]


def get_allowed_tables(exam, curriculum: str, rules) -> list[str]:
    """
    Curriculum tables the exam may occupy, highest priority first.

    A missing exam or one with no table valid for the curriculum yields [];
    such exams can only be free electives.
    """
    if not exam:
        return []
    priority = {table: i for i, table in enumerate(get_variant_tables(rules, curriculum))}
    declared = list(dict.fromkeys(_split_raw_table(exam.get("raw_table"))))
    allowed = [table for table in declared if table in priority]
    allowed.sort(key=lambda table: priority[table])
    return allowed


def allocate_plan(
    plan: list[dict],
    curriculum: str,
    rules,
    exams_by_id: dict,
) -> list[dict]:
    """
    Deterministically assign every non-fixed plan item to a table.

    Single greedy pass in plan order; running totals are updated after each
    placement, so earlier items win scarce table capacity:
      1) first allowed table still below its minimum, or belonging to a
         combined-sum rule still below its minimum;
      2) free-elective table while below the free-elective cap;
      3) overflow table (not counted toward the total).

    Custom items the user placed outside free-elective/overflow keep their
    table. Returns new item dicts in the original order.
    """
    table_mins = get_table_minimums(rules, curriculum)
    sum_rules = get_sum_rules(rules, curriculum)
    free_cap = get_common_rules(rules)["free_elective_credits"]

    running: dict[str, int] = {}

    def credits_in(table: str) -> int:
        return running.get(table, 0)

    def place(item: dict, table: str) -> dict:
        running[table] = credits_in(table) + int(item.get("credits", 0) or 0)
        return {**item, "table": table}

    def accepts(table: str) -> bool:
        if credits_in(table) < table_mins.get(table, 0):
            return True
        for rule in sum_rules:
            if table not in rule["tables"]:
                continue
            combined = sum(credits_in(t) for t in rule["tables"])
            if combined < rule["min_credits"]:
                return True
        return False

    allocated: list[dict] = []
    for item in plan:
        # Step 1: fixed items are never reassigned.
        if is_fixed_item(item):
            allocated.append(dict(item))
            continue

        # Step 2: candidate tables.
        if is_custom_item(item):
            current = str(item.get("table", "") or "")
            if current and current not in (FREE_ELECTIVE_TABLE, OVERFLOW_TABLE):
                allocated.append(place(item, current))
                continue
            candidates = []
        else:
            candidates = get_allowed_tables(exams_by_id.get(item.get("exam_id")), curriculum, rules)

        # Step 3: primary tables, then free electives, then overflow.
        target = next((table for table in candidates if accepts(table)), None)
        if target is None:
            target = FREE_ELECTIVE_TABLE if credits_in(FREE_ELECTIVE_TABLE) < free_cap else OVERFLOW_TABLE
        allocated.append(place(item, target))

    return allocated


def provisional_table(exam, curriculum: str, rules) -> str:
    """Insertion/migration table before the allocator rebalances: best candidate or free elective."""
    allowed = get_allowed_tables(exam, curriculum, rules)
    return allowed[0] if allowed else FREE_ELECTIVE_TABLE


def catalog_item(exam, table: str) -> dict:
    return {
        "id": exam["id"],
        "exam_id": exam["id"],
        "name": exam.get("name", exam["id"]),
        "credits": int(exam.get("credits", 0) or 0),
        "table": table,
        "kind": ITEM_KIND_CATALOG,
    }

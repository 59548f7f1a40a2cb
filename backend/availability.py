import datetime
import math
import re

from messages import DEFAULT_LANG, t

_LEADING_YEAR = re.compile(r"^\s*(\d+)")

# Oldest academic year offered in year pickers.
FIRST_ACADEMIC_YEAR = 2014


def parse_start_year(label) -> float:
    """
    '2025/2026' -> 2025. Only leading digits before '/' are read.

    Never raises: anything unparsable returns NaN. Every comparison against
    NaN is False, so callers comparing years treat an unreadable year as
    "condition not met" (the exam is unavailable).
    """
    if label is None:
        return math.nan
    head = str(label).split("/", 1)[0]
    m = _LEADING_YEAR.match(head)
    if not m:
        return math.nan
    return int(m.group(1))


def _availability_rule(exam) -> str:
    if not exam:
        return ""
    raw = exam.get("availability")
    if raw is None or (isinstance(raw, float) and math.isnan(raw)):
        return ""
    return str(raw).strip()


def _classify(rule: str) -> tuple[str, str | None]:
    """
    Map a raw availability string to (kind, argument).

    kinds: always, never, from, even, odd, unknown
    """
    low = rule.lower()
    if not low or low == "enabled":
        return "always", None
    if low == "disabled":
        return "never", None
    if low.startswith("from "):
        return "from", rule[5:].strip()
    if "biennial" in low:
        if "even" in low:
            return "even", None
        if "odd" in low:
            return "odd", None
    return "unknown", None


def is_available(exam, reference_year: str) -> bool:
    """Can `exam` be added to a plan in `reference_year`?"""
    kind, arg = _classify(_availability_rule(exam))
    if kind == "never":
        return False
    if kind == "from":
        return parse_start_year(reference_year) >= parse_start_year(arg)
    if kind == "even":
        return parse_start_year(reference_year) % 2 == 0
    if kind == "odd":
        return parse_start_year(reference_year) % 2 == 1
    # "always" and unrecognized rules are both permissive.
    return True


def describe_next_availability(exam, reference_year: str, lang: str = DEFAULT_LANG) -> str | None:
    """
    Hint shown next to an exam that is not selectable yet.

    None when the exam is available, when its rule is unrecognized, and for
    'disabled' (no activation to announce).
    """
    if is_available(exam, reference_year):
        return None
    kind, arg = _classify(_availability_rule(exam))
    if kind == "from":
        return t("available_from", lang, date=arg)
    if kind == "even":
        return t("next_activation_even", lang)
    if kind == "odd":
        return t("next_activation_odd", lang)
    return None


def current_academic_year(today: datetime.date | None = None) -> str:
    """Default reference year: '<y-1>/<y>' for the current calendar year."""
    year = (today or datetime.date.today()).year
    return f"{year - 1}/{year}"


def academic_years(start: int = FIRST_ACADEMIC_YEAR, end: int | None = None) -> list[str]:
    """Academic years from `start` through `end` (default: this year), newest first."""
    if end is None:
        end = datetime.date.today().year
    return [f"{y}/{y + 1}" for y in range(end, start - 1, -1)]

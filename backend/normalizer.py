import re

from messages import SUPPORTED_LANGS

# Matches: 2025/2026, 2025-2026, 2025/26, 2025 - 26, 2025_2026
ACADEMIC_YEAR = re.compile(r'^(\d{4})\s*[/\-_]\s*(\d{2}|\d{4})$')

# Plan keys end up as file names in the plan store.
PLAN_KEY = re.compile(r'^[A-Za-z0-9_-]{1,64}$')


def normalize_academic_year(raw) -> str | None:
    """
    Normalizes an academic year to canonical 'YYYY/YYYY' format.
    Handles: '2025/2026', '2025-2026', '2025/26', '2025 - 26'
    Returns None if the string is not a year range or the years are not consecutive.
    """
    if raw is None or not str(raw).strip():
        return None
    m = ACADEMIC_YEAR.match(str(raw).strip())
    if not m:
        return None
    start = int(m.group(1))
    end_raw = m.group(2)
    end = int(end_raw) if len(end_raw) == 4 else (start // 100) * 100 + int(end_raw)
    if end != start + 1:
        return None
    return f"{start}/{end}"


def normalize_curriculum(raw, known: list[str]) -> str | None:
    """'f94 ' -> 'F94' when it names a known curriculum, else None."""
    if raw is None:
        return None
    code = str(raw).strip().upper()
    return code if code in known else None


def normalize_plan_key(raw, default: str = "default") -> str | None:
    if raw is None or not str(raw).strip():
        return default
    key = str(raw).strip()
    return key if PLAN_KEY.match(key) else None


def normalize_lang(raw, default: str = "en") -> str:
    lang = str(raw or "").strip().lower()[:2]
    return lang if lang in SUPPORTED_LANGS else default


def normalize_credits(raw) -> int | None:
    """Positive integer credit weight, or None."""
    try:
        credits = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return credits if credits > 0 else None

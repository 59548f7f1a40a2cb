"""
Translated strings for validation messages, availability hints, table names
and CSV export labels.

Unknown keys render as the key itself so a missing translation never breaks
a report.
"""

DEFAULT_LANG = "en"

MESSAGES = {
    "it": {
        "Obbligatori": "Obbligatori",
        "Facoltativi": "Facoltativi",
        "Fuori Piano": "Fuori Piano",
        "mandatory_incomplete": "Obbligatori: Piano incompleto",
        "total_cfu_status": "Totale: {current}/{min} CFU",
        "table_missing_cfu": "Tabella {table}: Mancano {missing} CFU",
        "sum_bc_label": "Somma Tabelle B + C",
        "sum_label": "Somma Tabelle {tables}",
        "sum_missing": "Somma delle tabelle {tables} insufficiente: mancano {missing} CFU",
        "available_from": "Disponibile dal {date}",
        "next_activation_even": "Prossima attivazione: Anni Pari (es. 2026/27)",
        "next_activation_odd": "Prossima attivazione: Anni Dispari (es. 2027/28)",
        "facoltativo_label": "Facoltativo",
        "csv_mandatory": "Mandatory",
        "csv_extra": "Extra",
        "csv_curricolar": "Curricolar",
        "not_available": "N/D",
    },
    "en": {
        "Obbligatori": "Mandatory",
        "Facoltativi": "Optional",
        "Fuori Piano": "Out of Plan",
        "mandatory_incomplete": "Mandatory: Plan incomplete",
        "total_cfu_status": "Total: {current}/{min} CFU",
        "table_missing_cfu": "Table {table}: Missing {missing} CFU",
        "sum_bc_label": "Sum Tables B + C",
        "sum_label": "Sum Tables {tables}",
        "sum_missing": "Sum of tables {tables} insufficient: missing {missing} CFU",
        "available_from": "Available from {date}",
        "next_activation_even": "Next activation: Even Years (e.g. 2026/27)",
        "next_activation_odd": "Next activation: Odd Years (e.g. 2027/28)",
        "facoltativo_label": "Optional",
        "csv_mandatory": "Mandatory",
        "csv_extra": "Extra",
        "csv_curricolar": "Curricolar",
        "not_available": "N/D",
    },
}

SUPPORTED_LANGS = tuple(MESSAGES)


def t(key: str, lang: str = DEFAULT_LANG, **params) -> str:
    catalog = MESSAGES.get(lang) or MESSAGES[DEFAULT_LANG]
    text = catalog.get(key)
    if text is None:
        return key
    for name, value in params.items():
        text = text.replace(f"{{{name}}}", str(value))
    return text


def table_label(table: str, lang: str = DEFAULT_LANG) -> str:
    """Display name of a table code; curriculum tables (1, A, ...) are shown as-is."""
    return t(table, lang)

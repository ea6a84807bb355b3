from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence

import pandas as pd

from bizintel.models import ColumnKind, ColumnMetadata, Row

SAMPLE_ROWS = 100
NUMERIC_RATIO = 0.7

NUMBER_STRIP_PATTERN = re.compile(r"[,$€£¥₹]")
NUMBER_PREFIX_PATTERN = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

MONTH_NAMES = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"
DATE_SHAPE_PATTERNS = (
    re.compile(r"^\d{4}$"),
    re.compile(r"^\d{4}[-/]\d{1,2}(?:[-/]\d{1,2})?(?:[ T].*)?$"),
    # A dotted year form needs all three parts; "1999.12" is an amount.
    re.compile(r"^\d{4}\.\d{1,2}\.\d{1,2}$"),
    re.compile(r"^\d{1,2}[-/.]\d{1,2}[-/.]\d{2,4}(?:[ T].*)?$"),
    re.compile(rf"^(?:[a-z]+,?\s+)?{MONTH_NAMES}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}(?:\s.*)?$", re.IGNORECASE),
    re.compile(rf"^(?:[a-z]+,?\s+)?\d{{1,2}}\s+{MONTH_NAMES},?\s+\d{{4}}(?:\s.*)?$", re.IGNORECASE),
    re.compile(rf"^{MONTH_NAMES}\s+\d{{4}}$", re.IGNORECASE),
)


def parse_number(value: object) -> float | None:
    """Read the leading number of a cell after dropping commas and currency symbols.

    Mirrors a lenient float parse: "1,250.00" and "$12" parse, "12 units"
    yields 12.0, "n/a" yields None.
    """
    if value is None:
        return None
    cleaned = NUMBER_STRIP_PATTERN.sub("", str(value))
    match = NUMBER_PREFIX_PATTERN.match(cleaned)
    if not match:
        return None
    number = float(match.group(0))
    if not math.isfinite(number):
        return None
    return number


def looks_like_date(value: str) -> bool:
    text = value.strip()
    if not any(pattern.match(text) for pattern in DATE_SHAPE_PATTERNS):
        return False
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, OverflowError):
        return False
    return not pd.isna(parsed)


def infer_column_kind(values: Iterable[str]) -> ColumnKind:
    present = [value for value in values if value is not None and str(value).strip() != ""]
    if not present:
        return ColumnKind.EMPTY

    # Date runs first: a column of bare years is a date column.
    if any(looks_like_date(str(value)) for value in present):
        return ColumnKind.DATE

    numeric_count = sum(1 for value in present if parse_number(value) is not None)
    if numeric_count >= len(present) * NUMERIC_RATIO:
        return ColumnKind.NUMERIC

    return ColumnKind.CATEGORICAL


def analyze_columns(rows: Sequence[Row]) -> list[ColumnMetadata]:
    if not rows:
        return []
    sample = rows[:SAMPLE_ROWS]
    return [
        ColumnMetadata(name=column, kind=infer_column_kind(row.get(column, "") for row in sample))
        for column in rows[0].keys()
    ]

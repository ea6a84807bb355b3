from __future__ import annotations

import io
import logging
from pathlib import Path

import pandas as pd

from bizintel.errors import MalformedInputError
from bizintel.models import Row

logger = logging.getLogger(__name__)

CSV_ENCODINGS = ("utf-8-sig", "cp1252")
LAST_RESORT_ENCODING = "latin-1"


def _decode(content: bytes) -> str:
    for encoding in CSV_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    # latin-1 maps every byte, so decoding always succeeds here.
    return content.decode(LAST_RESORT_ENCODING)


def parse_csv(content: bytes | str) -> list[Row]:
    """Parse delimited text into rows keyed by the header line.

    Every cell is kept as its raw string; typing happens later in the
    schema inferencer. Blank lines are skipped and short rows are padded
    with empty strings.
    """
    text = _decode(content) if isinstance(content, bytes) else content
    if not text.strip():
        raise MalformedInputError("Empty or invalid CSV file.")

    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            index_col=False,
            keep_default_na=False,
            na_filter=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise MalformedInputError(f"Empty or invalid CSV file: {exc}") from exc

    if df.empty:
        raise MalformedInputError("Empty or invalid CSV file: no data rows.")

    df.columns = [str(column) for column in df.columns]
    df = df.fillna("")
    rows = df.to_dict(orient="records")
    logger.debug("Parsed %d rows with %d columns", len(rows), len(df.columns))
    return rows


def parse_csv_file(path: str | Path) -> list[Row]:
    path = Path(path)
    return parse_csv(path.read_bytes())

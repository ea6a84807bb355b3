from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from bizintel.models import ColumnKind, ColumnMetadata, DatasetSummary, NumericAggregate, Row
from bizintel.schema import analyze_columns, parse_number


def aggregate_numeric(rows: Sequence[Row], columns: Sequence[ColumnMetadata]) -> dict[str, NumericAggregate]:
    """Sum/average/min/max/count for numeric columns over every row.

    Unparseable cells are skipped. A column with no parseable cell is left
    out instead of reporting NaN.
    """
    aggregates: dict[str, NumericAggregate] = {}
    for column in columns:
        if column.kind != ColumnKind.NUMERIC:
            continue
        values = pd.Series([parse_number(row.get(column.name)) for row in rows], dtype="float64").dropna()
        if values.empty:
            continue
        total = float(values.sum())
        low, high = float(values.min()), float(values.max())
        # Rounding in the sum can push the mean a hair outside [min, max].
        average = min(max(total / len(values), low), high)
        aggregates[column.name] = NumericAggregate(
            total=total,
            average=average,
            min=low,
            max=high,
            count=int(len(values)),
        )
    return aggregates


def summarize(rows: Sequence[Row]) -> DatasetSummary:
    columns = analyze_columns(rows)
    return DatasetSummary(
        total_rows=len(rows),
        columns=tuple(columns),
        numeric_aggregates=aggregate_numeric(rows, columns),
    )

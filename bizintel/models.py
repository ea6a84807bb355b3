from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

Row = dict[str, str]


class ColumnKind(str, Enum):
    DATE = "date"
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    EMPTY = "empty"


@dataclass(frozen=True)
class ColumnMetadata:
    name: str
    kind: ColumnKind

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "kind": self.kind.value}


@dataclass(frozen=True)
class NumericAggregate:
    total: float
    average: float
    min: float
    max: float
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "average": self.average,
            "min": self.min,
            "max": self.max,
            "count": self.count,
        }


@dataclass(frozen=True)
class DatasetSummary:
    total_rows: int
    columns: tuple[ColumnMetadata, ...]
    numeric_aggregates: dict[str, NumericAggregate] = field(default_factory=dict)

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    @property
    def column_types(self) -> dict[str, str]:
        return {column.name: column.kind.value for column in self.columns}

    def columns_of(self, kind: ColumnKind) -> list[str]:
        return [column.name for column in self.columns if column.kind == kind]

    @property
    def overview(self) -> str:
        return f"Dataset contains {self.total_rows} records with {len(self.columns)} columns"

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "overview": self.overview,
            "columns": [column.to_dict() for column in self.columns],
            "columnTypes": self.column_types,
            "dateColumns": self.columns_of(ColumnKind.DATE),
            "numericColumns": self.columns_of(ColumnKind.NUMERIC),
            "categoricalColumns": self.columns_of(ColumnKind.CATEGORICAL),
            "numericAggregates": {name: agg.to_dict() for name, agg in self.numeric_aggregates.items()},
        }


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Dataset:
    id: str
    name: str
    description: str
    rows: tuple[Row, ...]
    summary: DatasetSummary
    uploaded_at: str = field(default_factory=utc_now_iso)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def head(self, limit: int) -> list[Row]:
        return [dict(row) for row in self.rows[:limit]]

    def listing(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "rowCount": self.row_count,
            "columnCount": len(self.summary.columns),
            "uploadedAt": self.uploaded_at,
        }


@dataclass(frozen=True)
class CachedAnswer:
    dataset_id: str
    question: str
    answer: dict[str, Any]

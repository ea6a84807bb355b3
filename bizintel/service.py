"""
Dataset ingestion and question answering.

The write path turns CSV text into an immutable Dataset (rows, inferred
column kinds, numeric aggregates). The read path renders a prompt for a
stored dataset, sends it to the completion service and parses the reply.
Storage and caching stay with the HTTP layer.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from bizintel import config
from bizintel.aggregate import summarize
from bizintel.errors import NotFoundError, UpstreamFailureError
from bizintel.ingest import parse_csv, parse_csv_file
from bizintel.llm_client import CompletionClient
from bizintel.llm_gate import parse_answer
from bizintel.models import Dataset, Row, utc_now_iso
from bizintel.prompts import build_prompt
from bizintel.store import new_dataset_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DemoDataset:
    key: str
    filename: str
    name: str
    description: str


DEMO_DATASETS: dict[str, DemoDataset] = {
    demo.key: demo
    for demo in (
        DemoDataset(
            "ecommerce",
            "ecommerce-sales.csv",
            "E-commerce Sales Analytics Demo",
            "Order-level revenue with channel and customer analytics",
        ),
        DemoDataset("saas", "saas-metrics.csv", "SaaS Growth Metrics Demo", "MRR/ARR tracking with customer analytics"),
        DemoDataset(
            "restaurant",
            "restaurant-daily-pnl.csv",
            "Restaurant P&L Analysis Demo",
            "Daily profit & loss with operational metrics",
        ),
        DemoDataset(
            "consulting",
            "consulting-revenue.csv",
            "Consulting Revenue Analysis Demo",
            "Project-based revenue with client satisfaction",
        ),
        DemoDataset(
            "retail",
            "retail-inventory.csv",
            "Retail Inventory Intelligence Demo",
            "Inventory optimization with seasonal analysis",
        ),
    )
}


def build_dataset(rows: Sequence[Row], name: str, description: str = "", id_prefix: str = "ds") -> Dataset:
    return Dataset(
        id=new_dataset_id(id_prefix),
        name=name,
        description=description,
        rows=tuple(rows),
        summary=summarize(rows),
        uploaded_at=utc_now_iso(),
    )


def ingest_dataset(content: bytes | str, name: str, description: str = "") -> Dataset:
    rows = parse_csv(content)
    dataset = build_dataset(rows, name=name, description=description)
    logger.info("Ingested dataset %s (%s): %d rows", dataset.id, name, dataset.row_count)
    return dataset


def get_demo(key: str) -> DemoDataset:
    demo = DEMO_DATASETS.get(key)
    if demo is None:
        raise NotFoundError(f"Demo dataset '{key}' not found.")
    return demo


def demo_dataset_path(key: str) -> Path:
    return Path(config.DEMO_DATASETS_DIR) / get_demo(key).filename


def load_demo_dataset(key: str) -> Dataset:
    demo = get_demo(key)
    path = demo_dataset_path(key)
    if not path.exists():
        raise NotFoundError(f"Demo dataset file for '{key}' is missing.")
    rows = parse_csv_file(path)
    dataset = build_dataset(rows, name=demo.name, description=demo.description, id_prefix=f"demo_{key}")
    logger.info("Loaded demo dataset %s: %d rows", dataset.id, dataset.row_count)
    return dataset


def answer_question(
    dataset: Dataset,
    question: str,
    client: CompletionClient,
    prior_turns: Sequence[Any] | None = None,
) -> dict[str, Any]:
    prompt = build_prompt(dataset, question, prior_turns)
    logger.info("Sending prompt for dataset %s (%d characters)", dataset.id, len(prompt))
    raw_text = client.send(prompt)
    if not raw_text or not raw_text.strip():
        raise UpstreamFailureError("Empty response from completion service.")
    return {
        "success": True,
        "datasetId": dataset.id,
        "query": question,
        "answerPayload": parse_answer(raw_text),
        "timestamp": utc_now_iso(),
        "datasetInfo": {"name": dataset.name, "rowCount": dataset.row_count},
    }

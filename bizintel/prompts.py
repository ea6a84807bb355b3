from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from bizintel import config
from bizintel.models import Dataset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndustryProfile:
    key: str
    keywords: tuple[str, ...]
    specialization: str
    kpis: str


# Order matters: the first profile whose keyword appears in the dataset name wins.
INDUSTRY_PROFILES: tuple[IndustryProfile, ...] = (
    IndustryProfile(
        key="ecommerce",
        keywords=("ecommerce", "sales"),
        specialization=(
            "E-commerce/Retail Operations with expertise in conversion optimization, "
            "customer lifetime value, and multi-channel strategy"
        ),
        kpis=(
            "AOV (Average Order Value), CAC (Customer Acquisition Cost), LTV (Lifetime Value), "
            "Conversion Rate, Return Rate, Profit Margins by Channel"
        ),
    ),
    IndustryProfile(
        key="saas",
        keywords=("saas", "metrics"),
        specialization=(
            "SaaS Growth Strategy with expertise in subscription metrics, churn reduction, "
            "and product-led growth"
        ),
        kpis=(
            "MRR (Monthly Recurring Revenue), ARR (Annual Recurring Revenue), Churn Rate, "
            "CAC Payback Period, Net Revenue Retention, Feature Adoption"
        ),
    ),
    IndustryProfile(
        key="restaurant",
        keywords=("restaurant", "pnl"),
        specialization=(
            "Restaurant/Food Service Operations with expertise in cost control, labor optimization, "
            "and profitability management"
        ),
        kpis=(
            "Food Cost %, Labor Cost %, Average Order Value, Table Turnover, Gross Margin, "
            "Daily Revenue per Seat"
        ),
    ),
    IndustryProfile(
        key="consulting",
        keywords=("consulting", "project"),
        specialization=(
            "Professional Services/Consulting with expertise in project profitability, "
            "client satisfaction, and resource utilization"
        ),
        kpis=(
            "Project Margin %, Utilization Rate, Client Satisfaction Score, Repeat Business Rate, "
            "Average Project Value, Hourly Billing Rate"
        ),
    ),
    IndustryProfile(
        key="retail",
        keywords=("retail", "inventory"),
        specialization=(
            "Retail Inventory Management with expertise in demand forecasting, inventory optimization, "
            "and supply chain efficiency"
        ),
        kpis=(
            "Inventory Turnover, Stockout Rate, Carrying Cost %, Gross Margin by Category, "
            "Seasonal Demand Variance, Reorder Efficiency"
        ),
    ),
)

DEFAULT_PROFILE = IndustryProfile(
    key="general",
    keywords=(),
    specialization="Multi-Industry Business Analysis with expertise in operational efficiency and strategic growth",
    kpis="Revenue Growth Rate, Profit Margins, Operational Efficiency, Market Share, Customer Satisfaction",
)

RESPONSE_STRUCTURE = {
    "answer": "Executive-level answer with specific calculated metrics",
    "insights": ["3-5 business insights with actual percentages and amounts"],
    "recommendations": ["Specific, actionable steps with projected impact"],
    "calculations": {"metric_name": "Calculated value from the data"},
    "risks": ["Quantified business risk"],
    "opportunities": ["High-impact opportunity with calculated value"],
    "visualizations": ["Suggested chart grounded in the data"],
    "confidence": "high/medium/low",
    "followUpQuestions": ["Follow-up question for deeper analysis"],
    "industryBenchmarks": {"benchmark_name": "Comparison with calculated metrics"},
}


def select_industry(dataset_name: str) -> IndustryProfile:
    lowered = (dataset_name or "").lower()
    for profile in INDUSTRY_PROFILES:
        if any(keyword in lowered for keyword in profile.keywords):
            return profile
    return DEFAULT_PROFILE


def _row_sample(dataset: Dataset) -> list[dict[str, str]]:
    if dataset.row_count <= config.PROMPT_FULL_ROWS_MAX:
        return dataset.head(dataset.row_count)
    return dataset.head(config.PROMPT_SAMPLE_ROWS)


def _format_turns(prior_turns: Sequence[Any]) -> str:
    lines = []
    for turn in prior_turns:
        if isinstance(turn, dict):
            role = str(turn.get("role") or turn.get("type") or "user")
            content = turn.get("content") or turn.get("text") or turn.get("question") or ""
            lines.append(f"- {role}: {content}")
        else:
            lines.append(f"- {turn}")
    return "\n".join(lines)


def build_prompt(dataset: Dataset, question: str, prior_turns: Sequence[Any] | None = None) -> str:
    """Render the analysis instruction for one question about one dataset."""
    profile = select_industry(dataset.name)
    summary = dataset.summary
    sample = _row_sample(dataset)
    remaining = dataset.row_count - len(sample)

    column_lines = "\n".join(f"- {name}: {kind}" for name, kind in summary.column_types.items())
    more_note = f"\n... and {remaining} more records available for calculations" if remaining > 0 else ""
    turns = _format_turns(prior_turns or [])
    turns_block = f"\nPRIOR CONVERSATION:\n{turns}\n" if turns else ""

    prompt = f"""
You are a seasoned C-suite business consultant specializing in {profile.specialization}.

Perform real calculations on the data provided. Never use placeholder values such as "$XXX" or "XX%".

BUSINESS CONTEXT:
Dataset: {dataset.name}
Records: {dataset.row_count:,}
Dimensions: {len(summary.columns)} columns
Coverage: {", ".join(summary.column_names)}

INDUSTRY-SPECIFIC KPIs TO ANALYZE: {profile.kpis}

DATA ARCHITECTURE:
{column_lines}

DATASET ROWS ({len(sample)} of {dataset.row_count}):
{json.dumps(sample, indent=2, ensure_ascii=False)}{more_note}

SUMMARY STATISTICS:
{json.dumps(summary.to_dict(), indent=2, ensure_ascii=False)}
{turns_block}
EXECUTIVE INQUIRY: "{question}"

Answer with strategic analysis, 3-5 insights, actionable recommendations, calculated KPIs,
forward-looking observations and quantified risks, each backed by numbers from the dataset.

Respond with a single JSON object of this structure:
{json.dumps(RESPONSE_STRUCTURE, indent=2)}
"""

    if len(prompt) > config.PROMPT_MAX_CHARS:
        logger.warning("Prompt size %d exceeds limit of %d characters", len(prompt), config.PROMPT_MAX_CHARS)
    return prompt

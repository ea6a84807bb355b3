from __future__ import annotations

import json
import logging
import re
from typing import Any

from jsonschema import ValidationError, validate

from bizintel.llm_schemas import ANSWER_SCHEMA, FALLBACK_CONFIDENCE

logger = logging.getLogger(__name__)

CODE_FENCE_PATTERN = re.compile(r"^\s*```[A-Za-z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
EMBEDDED_JSON_FENCE_PATTERN = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)


class SchemaValidationError(ValueError):
    pass


def validate_schema(output: Any, schema: dict[str, Any]) -> None:
    try:
        validate(instance=output, schema=schema)
    except ValidationError as exc:
        raise SchemaValidationError(str(exc)) from exc


def strip_code_fence(text: str) -> str:
    match = CODE_FENCE_PATTERN.match(text)
    if match:
        return match.group(1).strip()
    embedded = EMBEDDED_JSON_FENCE_PATTERN.search(text)
    if embedded:
        return embedded.group(1).strip()
    return text.strip()


def fallback_answer(text: str) -> dict[str, Any]:
    return {
        "answer": text,
        "insights": [],
        "recommendations": [],
        "calculations": {},
        "visualizations": [],
        "confidence": FALLBACK_CONFIDENCE,
        "followUpQuestions": [],
    }


def parse_answer(raw_text: str) -> dict[str, Any]:
    """Turn completion text into an answer object; never raises.

    Text that is not a JSON object of the answer shape is wrapped as the
    plain ``answer`` of a fallback payload.
    """
    cleaned = strip_code_fence(raw_text or "")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.info("Completion text is not JSON (%s); using fallback payload", exc.msg)
        return fallback_answer(cleaned)

    try:
        validate_schema(payload, ANSWER_SCHEMA)
    except SchemaValidationError:
        logger.info("Completion JSON does not match the answer schema; using fallback payload")
        return fallback_answer(cleaned)
    return payload

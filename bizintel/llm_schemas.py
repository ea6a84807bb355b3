from __future__ import annotations

_STRING_LIST = {"type": "array", "items": {}}

ANSWER_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": True,
    "required": ["answer"],
    "properties": {
        "answer": {"type": "string"},
        "insights": _STRING_LIST,
        "recommendations": _STRING_LIST,
        "calculations": {"type": "object"},
        "risks": _STRING_LIST,
        "opportunities": _STRING_LIST,
        "visualizations": _STRING_LIST,
        "confidence": {"type": "string"},
        "followUpQuestions": _STRING_LIST,
        "industryBenchmarks": {"type": "object"},
    },
}

FALLBACK_CONFIDENCE = "medium"

"""
app/schemas/metrics.py

Response schemas for metric report endpoints.
"""

from __future__ import annotations

import dataclasses
import math
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MetricReportResponse(BaseModel):
    """
    API response model for one metric report.

    ``data`` is the structured result; ``report`` is the same result
    rendered as markdown.
    """

    model_config = ConfigDict(extra="forbid")

    metric: str = Field(min_length=1)
    currency: str | None = None
    data: dict[str, Any]
    report: str


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float) and (math.isinf(value) or math.isnan(value)):
        return None
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def result_payload(result: Any) -> dict[str, Any]:
    """
    Flatten a metric result dataclass into JSON-safe primitives.

    Non-finite floats (an infinite Quick Ratio) become ``None``.
    """

    return _jsonable(dataclasses.asdict(result))

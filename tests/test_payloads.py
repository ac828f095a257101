"""
tests/test_payloads.py

JSON flattening of metric results and structured log lines.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

import pytest
from pydantic import ValidationError

from app.domain.billing import EventType
from app.logging_utils import log_event
from app.schemas.metrics import MetricReportResponse, result_payload
from kpi.changes import compute_recent_changes
from kpi.movement import QUICK_RATIO_NO_CHURN
from kpi.mrr import compute_mrr


class TestResultPayload:
    def test_datetimes_and_nested_dataclasses(self, make_subscription, now) -> None:
        payload = result_payload(compute_mrr([make_subscription()], now=now))
        assert payload["as_of"] == "2026-03-01T12:00:00+00:00"
        assert payload["status_breakdown"] == {"active": 1, "trialing": 0, "past_due": 0}
        json.dumps(payload)

    def test_enums_become_values(self, make_event) -> None:
        payload = result_payload(compute_recent_changes([make_event(type=EventType.SUBSCRIPTION_CREATED)], 7))
        assert payload["changes"][0]["type"] == "new"

    def test_non_finite_floats_become_none(self) -> None:
        @dataclass
        class Ratio:
            value: float

        assert result_payload(Ratio(QUICK_RATIO_NO_CHURN)) == {"value": None}

    def test_response_forbids_extra_fields(self) -> None:
        with pytest.raises(ValidationError):
            MetricReportResponse(metric="mrr", data={}, report="", unexpected=True)


class TestLogEvent:
    def test_emits_sorted_json(self, caplog, now) -> None:
        logger = logging.getLogger("tests.log_event")
        with caplog.at_level(logging.INFO, logger="tests.log_event"):
            log_event(logger, logging.INFO, "snapshot", taken_at=now, count=3)
        record = json.loads(caplog.records[-1].getMessage())
        assert record == {"count": 3, "event": "snapshot", "taken_at": "2026-03-01 12:00:00+00:00"}

    def test_skipped_when_level_disabled(self, caplog) -> None:
        logger = logging.getLogger("tests.log_event.quiet")
        with caplog.at_level(logging.WARNING, logger="tests.log_event.quiet"):
            log_event(logger, logging.DEBUG, "noise")
        assert caplog.records == []

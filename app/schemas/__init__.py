"""
app/schemas package marker.
"""

from app.schemas.metrics import MetricReportResponse, result_payload

__all__ = [
    "MetricReportResponse",
    "result_payload",
]

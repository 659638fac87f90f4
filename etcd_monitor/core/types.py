"""Canonical data structures for a single monitoring tick.

`HealthStatus` is what the probe learns about etcd; `MetricPoint` is what the
sink ships to CloudWatch. Both are immutable and live for one tick only.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


HEALTHY: float = 0.0
UNHEALTHY: float = 1.0

METRIC_NAME = "UnhealthyCount"
METRIC_UNIT = "Count"
DIMENSION_NAME = "By cluster"


# ═══════════════════════════════════════════════════════════════════════════
# BASE CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

class CanonicalModel(BaseModel):
    """A base model providing shared configuration for all tick data structures.

    Configuration:
        frozen: Prevents modification after creation.
        extra: Rejects unknown fields.
        str_strip_whitespace: Normalizes string inputs automatically.
    """
    model_config = ConfigDict(
        frozen=True,
        extra='forbid',
        str_strip_whitespace=True,
    )


# ═══════════════════════════════════════════════════════════════════════════
# HEALTH
# ═══════════════════════════════════════════════════════════════════════════

class HealthStatus(CanonicalModel):
    """Decoded answer of one etcd `/health` request."""
    is_healthy: bool

    @property
    def unhealthy_count(self) -> float:
        """The metric value this status maps to: 0.0 healthy, 1.0 unhealthy."""
        return HEALTHY if self.is_healthy else UNHEALTHY


# ═══════════════════════════════════════════════════════════════════════════
# METRIC
# ═══════════════════════════════════════════════════════════════════════════

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricPoint(CanonicalModel):
    """One CloudWatch data point describing the outcome of a tick.

    The point carries a single-sample statistic set rather than a plain value:
    SampleCount is 1 and Minimum, Maximum and Sum all equal `count`.

    Attributes:
        count: 0.0 when etcd is healthy, 1.0 otherwise. Nothing else is valid.
        dimension_value: Name of the monitored cluster.
        namespace: CloudWatch namespace the point is published under.
        timestamp: Time the health outcome was evaluated (UTC).
        metric_name: Always "UnhealthyCount".
        dimension_name: Always "By cluster".
        unit: Always "Count".

    Example:
        >>> point = MetricPoint(count=1.0, dimension_value="main", namespace="etcd")
        >>> point.to_metric_datum()["StatisticValues"]["Sum"]
        1.0
    """
    count: float
    dimension_value: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    timestamp: datetime = Field(default_factory=_utcnow)
    metric_name: Literal["UnhealthyCount"] = METRIC_NAME
    dimension_name: Literal["By cluster"] = DIMENSION_NAME
    unit: Literal["Count"] = METRIC_UNIT

    @field_validator("count")
    @classmethod
    def validate_count(cls, v: float) -> float:
        """Reject anything that is not exactly healthy or unhealthy.

        Raises:
            ValueError: If the count is neither 0.0 nor 1.0.
        """
        if v not in (HEALTHY, UNHEALTHY):
            raise ValueError(f"count must be 0.0 or 1.0, got {v!r}")
        return float(v)

    @property
    def is_healthy(self) -> bool:
        return self.count == HEALTHY

    def to_metric_datum(self) -> dict[str, Any]:
        """Render the point in the shape of a CloudWatch `MetricDatum`."""
        return {
            "MetricName": self.metric_name,
            "Dimensions": [
                {"Name": self.dimension_name, "Value": self.dimension_value},
            ],
            "StatisticValues": {
                "SampleCount": 1.0,
                "Minimum": self.count,
                "Maximum": self.count,
                "Sum": self.count,
            },
            "Timestamp": self.timestamp,
            "Unit": self.unit,
        }

"""CloudWatch metric sink.

Turn the health outcome of one tick into a single `UnhealthyCount` data point
and publish it with one `PutMetricData` call. Delivery is best effort: a
failed call is logged and the point is dropped. There is no retry and no
buffering.
"""

import asyncio
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from etcd_monitor.config import Settings, StartupError
from etcd_monitor.core.logging_config import get_logger
from etcd_monitor.core.types import MetricPoint

logger = get_logger(__name__)

SINK_TIMEOUT_SECONDS = 5


class CloudWatchSetupError(StartupError):
    """Raised when the CloudWatch client cannot be built from the settings."""


def create_cloudwatch_client(region: str) -> Any:
    """Create a CloudWatch client with bounded timeouts and no retries.

    Raises:
        CloudWatchSetupError: If botocore refuses the region or configuration.
    """
    config = Config(
        connect_timeout=SINK_TIMEOUT_SECONDS,
        read_timeout=SINK_TIMEOUT_SECONDS,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )
    try:
        return boto3.session.Session(region_name=region).client("cloudwatch", config=config)
    except BotoCoreError as exc:
        raise CloudWatchSetupError(f"Cannot create CloudWatch client: {exc}") from exc


class MetricSink:
    """Publishes one data point per tick for a single monitored cluster.

    Args:
        cluster_name: CloudWatch dimension value.
        namespace: CloudWatch namespace.
        client: A boto3 CloudWatch client.
    """

    def __init__(self, cluster_name: str, namespace: str, client: Any) -> None:
        self.cluster_name = cluster_name
        self.namespace = namespace
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[Any] = None) -> "MetricSink":
        return cls(
            cluster_name=settings.ETCD_NAME,
            namespace=settings.METRIC_NAMESPACE,
            client=client or create_cloudwatch_client(settings.AWS_REGION),
        )

    def build_point(self, count: float) -> MetricPoint:
        return MetricPoint(
            count=count,
            dimension_value=self.cluster_name,
            namespace=self.namespace,
        )

    def emit(self, count: float) -> Optional[MetricPoint]:
        """Publish `count` as this tick's data point.

        Args:
            count: 0.0 for healthy, 1.0 for unhealthy.

        Returns:
            The published point, or None when CloudWatch rejected the call or
            could not be reached.
        """
        if count > 0:
            logger.info("etcd IS NOT healthy", cluster=self.cluster_name)
        else:
            logger.info("etcd is healthy", cluster=self.cluster_name)

        point = self.build_point(count)
        try:
            self._client.put_metric_data(
                Namespace=point.namespace,
                MetricData=[point.to_metric_datum()],
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error(
                "Failed to put metric data",
                error=str(exc),
                namespace=point.namespace,
                metric=point.metric_name,
            )
            return None

        logger.debug("Metric data sent", namespace=point.namespace, count=point.count)
        return point

    async def emit_async(self, count: float) -> Optional[MetricPoint]:
        """Run `emit` in a worker thread so the event loop keeps serving signals."""
        return await asyncio.to_thread(self.emit, count)

"""Metric sink test suite.

Validate the PutMetricData request shape against botocore's own parameter
validation, and confirm that delivery failures are logged and swallowed.
"""
import asyncio

import pytest
from botocore.exceptions import EndpointConnectionError
from botocore.stub import ANY
from structlog.testing import capture_logs

from etcd_monitor.config import StartupError
from etcd_monitor.metrics import CloudWatchSetupError, MetricSink, create_cloudwatch_client


def _expected_params(count: float, cluster: str = "main", namespace: str = "etcd") -> dict:
    return {
        "Namespace": namespace,
        "MetricData": [
            {
                "MetricName": "UnhealthyCount",
                "Dimensions": [{"Name": "By cluster", "Value": cluster}],
                "StatisticValues": {
                    "SampleCount": 1.0,
                    "Minimum": count,
                    "Maximum": count,
                    "Sum": count,
                },
                "Timestamp": ANY,
                "Unit": "Count",
            }
        ],
    }


@pytest.mark.parametrize("count, verdict", [(0.0, "etcd is healthy"), (1.0, "etcd IS NOT healthy")])
def test_emit_sends_single_sample_statistic_set(stubbed_cloudwatch, count, verdict):
    client, stubber = stubbed_cloudwatch
    stubber.add_response("put_metric_data", {}, _expected_params(count))
    sink = MetricSink("main", "etcd", client)

    with capture_logs() as logs:
        point = sink.emit(count)

    stubber.assert_no_pending_responses()
    assert point is not None
    assert point.count == count
    assert logs[0]["event"] == verdict


def test_emit_uses_configured_dimension_and_namespace(stubbed_cloudwatch, mock_settings):
    client, stubber = stubbed_cloudwatch
    stubber.add_response(
        "put_metric_data", {}, _expected_params(1.0, cluster="test-cluster", namespace="etcd-test")
    )

    MetricSink.from_settings(mock_settings, client=client).emit(1.0)

    stubber.assert_no_pending_responses()


def test_rejected_call_is_logged_and_dropped(stubbed_cloudwatch):
    """A CloudWatch error never escapes the sink."""
    client, stubber = stubbed_cloudwatch
    stubber.add_client_error("put_metric_data", service_error_code="Throttling", http_status_code=400)
    sink = MetricSink("main", "etcd", client)

    with capture_logs() as logs:
        assert sink.emit(1.0) is None

    assert logs[-1]["event"] == "Failed to put metric data"
    assert logs[-1]["log_level"] == "error"
    assert "Throttling" in logs[-1]["error"]


def test_unreachable_backend_is_logged_and_not_retried(recording_cloudwatch):
    recording_cloudwatch.error = EndpointConnectionError(
        endpoint_url="https://monitoring.us-east-1.amazonaws.com/"
    )
    sink = MetricSink("main", "etcd", recording_cloudwatch)

    with capture_logs() as logs:
        assert sink.emit(0.0) is None

    assert len(recording_cloudwatch.calls) == 1
    assert logs[-1]["event"] == "Failed to put metric data"


def test_one_call_per_emission(recording_cloudwatch):
    sink = MetricSink("main", "etcd", recording_cloudwatch)

    sink.emit(0.0)
    sink.emit(1.0)

    assert len(recording_cloudwatch.calls) == 2
    assert all(len(call["MetricData"]) == 1 for call in recording_cloudwatch.calls)


def test_identical_outcomes_differ_only_by_timestamp():
    sink = MetricSink("main", "etcd", client=None)

    first = sink.build_point(1.0)
    second = sink.build_point(1.0)

    assert first.model_dump(exclude={"timestamp"}) == second.model_dump(exclude={"timestamp"})
    assert second.timestamp >= first.timestamp


def test_emit_async_runs_the_same_emission(recording_cloudwatch):
    sink = MetricSink("main", "etcd", recording_cloudwatch)

    point = asyncio.run(sink.emit_async(1.0))

    assert point is not None and point.count == 1.0
    assert recording_cloudwatch.calls[0]["Namespace"] == "etcd"


def test_cloudwatch_client_has_bounded_timeouts_and_no_retries():
    client = create_cloudwatch_client("ap-southeast-2")

    assert client.meta.region_name == "ap-southeast-2"
    assert client.meta.config.connect_timeout == 5
    assert client.meta.config.read_timeout == 5
    assert client.meta.config.retries["total_max_attempts"] == 1


def test_unusable_region_is_a_startup_error():
    with pytest.raises(CloudWatchSetupError, match="Cannot create CloudWatch client"):
        create_cloudwatch_client("us east 1")


def test_cloudwatch_setup_error_is_a_startup_error():
    assert issubclass(CloudWatchSetupError, StartupError)

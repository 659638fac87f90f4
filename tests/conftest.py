"""Test configuration and shared fixtures.

Provide isolated settings, a fake etcd `/health` endpoint and fake CloudWatch
clients. All fixtures ensure tests run without environment files, real TLS
endpoints or AWS credentials.
"""
from pathlib import Path
from typing import Any, Callable, Generator, Optional, Union

import boto3
import httpx
import pytest
import structlog
from botocore.stub import Stubber
from fastapi import FastAPI, Response

from etcd_monitor.config import Settings

TLS_FIXTURES = Path(__file__).parent / "fixtures" / "tls"

CONFIG_ENV_VARS = (
    "CHECK_INTERVAL",
    "ETCD_ADVERTISE_CLIENT_URLS",
    "ETCDMON_CA_FILE",
    "ETCDMON_CERT_FILE",
    "ETCDMON_KEY_FILE",
    "ETCD_NAME",
    "METRIC_NAMESPACE",
    "AWS_REGION",
    "LOG_LEVEL",
    "LOG_FORMAT",
)

# ==============================================================================
# ISOLATION
# ==============================================================================

@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Strip agent variables from the host environment and reset structlog."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    structlog.reset_defaults()

# ==============================================================================
# CONFIGURATION FIXTURES
# ==============================================================================

@pytest.fixture
def tls_files() -> dict[str, str]:
    """Paths of a throwaway CA and a client key pair signed by it."""
    return {
        "ETCDMON_CA_FILE": str(TLS_FIXTURES / "ca.pem"),
        "ETCDMON_CERT_FILE": str(TLS_FIXTURES / "client.pem"),
        "ETCDMON_KEY_FILE": str(TLS_FIXTURES / "client.key"),
    }


@pytest.fixture
def mock_settings(tls_files: dict[str, str]) -> Settings:
    """Provide isolated test configuration without external dependencies.

    Returns:
        Settings: A one-second interval, a fake etcd address and the test
            TLS material.
    """
    return Settings(
        CHECK_INTERVAL=1,
        ETCD_ADVERTISE_CLIENT_URLS="https://etcd.test:2379",
        ETCD_NAME="test-cluster",
        METRIC_NAMESPACE="etcd-test",
        AWS_REGION="eu-west-1",
        _env_file=None,
        **tls_files,
    )

# ==============================================================================
# FAKE ETCD
# ==============================================================================

def build_fake_etcd(body: Union[str, bytes], status_code: int = 200) -> FastAPI:
    """Build an ASGI app answering GET /health with a fixed body."""
    app = FastAPI()
    app.state.requests = 0

    @app.get("/health")
    async def health() -> Response:
        app.state.requests += 1
        return Response(content=body, status_code=status_code, media_type="application/json")

    return app


@pytest.fixture
def etcd_client() -> Callable[..., httpx.AsyncClient]:
    """Factory for HTTP clients wired to a fake etcd member."""

    def factory(body: Union[str, bytes], status_code: int = 200) -> httpx.AsyncClient:
        app = build_fake_etcd(body, status_code)
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app))

    return factory

# ==============================================================================
# FAKE CLOUDWATCH
# ==============================================================================

class RecordingCloudWatch:
    """Minimal stand-in for a boto3 CloudWatch client."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.error = error

    def put_metric_data(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return {}


@pytest.fixture
def recording_cloudwatch() -> RecordingCloudWatch:
    return RecordingCloudWatch()


@pytest.fixture
def stubbed_cloudwatch() -> Generator[tuple[Any, Stubber], None, None]:
    """Provide a real botocore CloudWatch client with every call stubbed."""
    client = boto3.client(
        "cloudwatch",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber

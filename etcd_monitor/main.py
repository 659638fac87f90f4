"""Entry point for the etcd monitor agent.

Load configuration, configure logging, load TLS material, then hand control
to the scheduler until a termination signal arrives. Confine all side effects
(logging setup, HTTP and CloudWatch clients, signal handlers) to this module
so the startup order stays predictable.

Exit Codes:
    0: Graceful shutdown after a termination signal.
    1: Fatal startup error (configuration, TLS material or CloudWatch client).
    2: Command-line usage error.
"""

import asyncio
import ssl
import sys
from typing import Optional, Sequence

import httpx

from etcd_monitor.config import ConfigurationError, Settings, load_settings
from etcd_monitor.core.logging_config import configure_logging, get_logger
from etcd_monitor.core.tls import TLSMaterialError, create_http_client, create_ssl_context
from etcd_monitor.healthcheck import PROBE_TIMEOUT_SECONDS
from etcd_monitor.metrics import CloudWatchSetupError, MetricSink
from etcd_monitor.scheduler import Scheduler, build_health_tick


def render_banner(settings: Settings) -> str:
    """Describe the effective configuration for the operator."""
    return "\n".join(
        [
            "==> etcd Monitor Configuration:",
            "",
            f"\t      Check interval: {settings.CHECK_INTERVAL} (seconds)",
            f"\t        etcd Address: {settings.ETCD_ADVERTISE_CLIENT_URLS}",
            f"\t           etcd Name: {settings.ETCD_NAME}",
            f"\tCloudWatch Namespace: {settings.METRIC_NAMESPACE}",
            f"\t          AWS Region: {settings.AWS_REGION}",
            "",
        ]
    )


async def run_monitor(
    settings: Settings,
    ssl_context: Optional[ssl.SSLContext] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    sink: Optional[MetricSink] = None,
) -> Scheduler:
    """Monitor etcd until a termination signal is received.

    Args:
        settings: Validated agent settings.
        ssl_context: Mutual TLS context used to build the HTTP client.
        http_client: Pre-built client, used instead of `ssl_context`.
        sink: Pre-built metric sink, created from settings when omitted.

    Returns:
        The scheduler, after it has stopped.
    """
    if http_client is None and ssl_context is None:
        raise ValueError("either ssl_context or http_client is required")
    sink = sink or MetricSink.from_settings(settings)
    if http_client is None:
        http_client = create_http_client(ssl_context, PROBE_TIMEOUT_SECONDS)

    try:
        scheduler = Scheduler(
            settings.CHECK_INTERVAL, build_health_tick(settings, http_client, sink)
        )
        scheduler.install_signal_handlers()
        try:
            await scheduler.run()
        finally:
            scheduler.remove_signal_handlers()
    finally:
        await http_client.aclose()
    return scheduler


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the agent and return the process exit status."""
    try:
        settings = load_settings(argv)
    except ConfigurationError as exc:
        configure_logging(Settings.model_construct())
        get_logger("etcd_monitor").critical("Invalid configuration", error=str(exc))
        return 1

    configure_logging(settings)
    logger = get_logger("etcd_monitor")

    try:
        ssl_context = create_ssl_context(settings)
    except TLSMaterialError as exc:
        logger.critical("Failed to load TLS material", error=str(exc))
        return 1

    try:
        sink = MetricSink.from_settings(settings)
    except CloudWatchSetupError as exc:
        logger.critical("Failed to set up CloudWatch", error=str(exc))
        return 1

    print(render_banner(settings), flush=True)

    asyncio.run(run_monitor(settings, ssl_context, sink=sink))
    logger.info("etcd monitor exited")
    return 0


def cli() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    cli()

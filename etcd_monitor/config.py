"""Agent configuration management via pydantic-settings.

Centralize all configuration parameters for the etcd monitor. Load settings from
environment variables and/or a `.env` file, then apply command-line overrides on
top. Precedence is: command line > environment > built-in default.

The resulting `Settings` object is frozen and is passed explicitly to the probe,
the metric sink and the scheduler.
"""

import argparse
import re
from typing import Literal, Optional, Sequence

from pydantic import (
    AnyHttpUrl,
    PositiveInt,
    TypeAdapter,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class StartupError(Exception):
    """Base class for errors that abort the agent before monitoring begins."""


class ConfigurationError(StartupError):
    """Raised when the merged configuration fails validation."""


_URL_ADAPTER = TypeAdapter(AnyHttpUrl)
# Same shape botocore accepts for region names.
_REGION_PATTERN = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9\-]{0,61}[a-zA-Z0-9])?$")


class Settings(BaseSettings):
    """Agent-wide configuration settings.

    Field names match the environment variables they are read from.

    Attributes:
        CHECK_INTERVAL: Seconds between two health checks.
        ETCD_ADVERTISE_CLIENT_URLS: Base URL of the etcd member to probe.
        ETCDMON_CA_FILE: PEM encoded CA certificate used to verify etcd.
        ETCDMON_CERT_FILE: PEM encoded client certificate.
        ETCDMON_KEY_FILE: PEM encoded client private key.
        ETCD_NAME: Cluster name, used as the CloudWatch dimension value.
        METRIC_NAMESPACE: CloudWatch metric namespace.
        AWS_REGION: CloudWatch region.
        LOG_LEVEL: Minimum logging verbosity level.
        LOG_FORMAT: Log renderer, human readable console or JSON lines.
        LOGGING_NOISY_MODULES: Third-party loggers capped at WARNING.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    # ==========================================================================
    # SCHEDULING
    # ==========================================================================
    CHECK_INTERVAL: PositiveInt = 60

    # ==========================================================================
    # ETCD TARGET
    # ==========================================================================
    ETCD_ADVERTISE_CLIENT_URLS: str = "https://127.0.0.1:2379"
    ETCDMON_CA_FILE: str = ""
    ETCDMON_CERT_FILE: str = ""
    ETCDMON_KEY_FILE: str = ""

    # ==========================================================================
    # CLOUDWATCH
    # ==========================================================================
    ETCD_NAME: str = "etcd"
    METRIC_NAMESPACE: str = "etcd"
    AWS_REGION: str = "us-east-1"

    # ==========================================================================
    # LOGGING
    # ==========================================================================
    LOG_LEVEL: Literal["debug", "info", "warning", "error", "critical"] = "info"
    LOG_FORMAT: Literal["console", "json"] = "console"
    LOGGING_NOISY_MODULES: list[str] = [
        "botocore",
        "boto3",
        "urllib3",
        "httpx",
        "httpcore",
        "asyncio",
    ]

    @field_validator("ETCD_ADVERTISE_CLIENT_URLS")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate that the etcd address is an http(s) URL.

        The trailing slash is dropped so the health path can be appended.

        Raises:
            ValueError: If the value is not an absolute http or https URL.
        """
        try:
            _URL_ADAPTER.validate_python(v)
        except ValidationError as exc:
            raise ValueError(f"must be an http(s) URL, got {v!r}") from exc
        return v.rstrip("/")

    @field_validator("ETCD_NAME", "METRIC_NAMESPACE", "AWS_REGION")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("AWS_REGION")
    @classmethod
    def validate_region(cls, v: str) -> str:
        """Reject region names the AWS SDK would refuse when building a client."""
        if not _REGION_PATTERN.match(v):
            raise ValueError(f"not a valid AWS region name: {v!r}")
        return v


# ==============================================================================
# COMMAND LINE
# ==============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser.

    Every flag defaults to `argparse.SUPPRESS`, so only flags actually given
    on the command line reach `Settings` and override the environment.
    """
    parser = argparse.ArgumentParser(
        prog="etcd-monitor",
        description="Poll etcd health and report it to AWS CloudWatch.",
        argument_default=argparse.SUPPRESS,
    )
    parser.add_argument(
        "--interval",
        dest="CHECK_INTERVAL",
        type=int,
        help="Time interval of how often to run the check (in seconds). "
        "Overrides the CHECK_INTERVAL environment variable if set.",
    )
    parser.add_argument(
        "--address",
        dest="ETCD_ADVERTISE_CLIENT_URLS",
        help="The address of the etcd server. "
        "Overrides the ETCD_ADVERTISE_CLIENT_URLS environment variable if set.",
    )
    parser.add_argument(
        "--ca-file",
        dest="ETCDMON_CA_FILE",
        help="A PEM encoded CA's certificate file. "
        "Overrides the ETCDMON_CA_FILE environment variable if set.",
    )
    parser.add_argument(
        "--cert-file",
        dest="ETCDMON_CERT_FILE",
        help="A PEM encoded certificate file. "
        "Overrides the ETCDMON_CERT_FILE environment variable if set.",
    )
    parser.add_argument(
        "--key-file",
        dest="ETCDMON_KEY_FILE",
        help="A PEM encoded private key file. "
        "Overrides the ETCDMON_KEY_FILE environment variable if set.",
    )
    parser.add_argument(
        "--name",
        dest="ETCD_NAME",
        help="The name of the etcd cluster. This value will be used as CloudWatch "
        "dimension value. Overrides the ETCD_NAME environment variable if set.",
    )
    parser.add_argument(
        "--namespace",
        dest="METRIC_NAMESPACE",
        help="AWS CloudWatch metric namespace. "
        "Overrides the METRIC_NAMESPACE environment variable if set.",
    )
    parser.add_argument(
        "--region",
        dest="AWS_REGION",
        help="AWS CloudWatch region. "
        "Overrides the AWS_REGION environment variable if set.",
    )
    parser.add_argument(
        "--log-level",
        dest="LOG_LEVEL",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Minimum log level. Overrides the LOG_LEVEL environment variable if set.",
    )
    parser.add_argument(
        "--log-format",
        dest="LOG_FORMAT",
        choices=["console", "json"],
        help="Log output format. Overrides the LOG_FORMAT environment variable if set.",
    )
    return parser


def load_settings(
    argv: Optional[Sequence[str]] = None, env_file: Optional[str] = ".env"
) -> Settings:
    """Merge command-line flags, environment and defaults into `Settings`.

    Args:
        argv: Command-line arguments, excluding the program name. Defaults to
            `sys.argv[1:]`.
        env_file: Dotenv file to read, or None to skip it.

    Returns:
        The validated, frozen settings.

    Raises:
        ConfigurationError: If any value fails validation (for example a zero
            or negative interval).
        SystemExit: On argparse usage errors or `--help`.
    """
    overrides = vars(build_parser().parse_args(argv))
    try:
        return Settings(_env_file=env_file, **overrides)
    except ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {errors}") from exc

"""TLS material loading and HTTP client construction.

etcd is reached over mutual TLS: the agent verifies the server against the
configured CA and presents its own client certificate. Any problem with the
files is a startup error; nothing here runs once monitoring has begun.
"""

import ssl

import httpx

from etcd_monitor.config import Settings, StartupError
from etcd_monitor.core.logging_config import get_logger

logger = get_logger(__name__)


class TLSMaterialError(StartupError):
    """Raised when the CA, certificate or key file cannot be loaded."""


def create_ssl_context(settings: Settings) -> ssl.SSLContext:
    """Build a client-side SSL context from the configured PEM files.

    Args:
        settings: Agent settings holding the CA, certificate and key paths.

    Returns:
        An SSL context that verifies etcd and presents the client certificate.

    Raises:
        TLSMaterialError: If a path is unset, unreadable, or holds invalid PEM.
    """
    ca_file = settings.ETCDMON_CA_FILE
    cert_file = settings.ETCDMON_CERT_FILE
    key_file = settings.ETCDMON_KEY_FILE

    for label, path in (("CA", ca_file), ("certificate", cert_file), ("key", key_file)):
        if not path:
            raise TLSMaterialError(f"No {label} file configured")

    try:
        context = ssl.create_default_context(cafile=ca_file)
    except (OSError, ssl.SSLError) as exc:
        raise TLSMaterialError(f"Cannot load CA file '{ca_file}': {exc}") from exc

    try:
        context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    except (OSError, ssl.SSLError) as exc:
        raise TLSMaterialError(
            f"Cannot load client key pair '{cert_file}' / '{key_file}': {exc}"
        ) from exc

    logger.debug("TLS material loaded", ca_file=ca_file, cert_file=cert_file)
    return context


def create_http_client(ssl_context: ssl.SSLContext, timeout: float) -> httpx.AsyncClient:
    """Return the async HTTP client used by the health probe."""
    return httpx.AsyncClient(verify=ssl_context, timeout=timeout)

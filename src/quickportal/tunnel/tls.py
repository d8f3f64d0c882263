"""
TLS contexts for secured local targets.

Certificate files are read from disk every time a context is built, so
callers decide how often that happens (see CertReloadPolicy).
"""

import ssl

from quickportal.models.enums import LocalTransport
from quickportal.models.tunnel import ClusterConfig
from quickportal.utils.logger import get_logger

logger = get_logger(__name__)


def build_local_ssl_context(cluster: ClusterConfig) -> ssl.SSLContext | None:
    """
    Build the client TLS context for connecting to the local target.

    Args:
        cluster: Pool configuration holding the transport mode and cert paths.

    Returns:
        An SSLContext, or None for plain TCP.

    Raises:
        OSError: If a certificate file cannot be read.
        ssl.SSLError: If the certificate material is invalid.
    """
    mode = cluster.local_transport

    if mode == LocalTransport.PLAIN:
        return None

    if mode == LocalTransport.TLS_NO_VERIFY:
        logger.debug("Allowing invalid certificates for local target")
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    if mode == LocalTransport.TLS_CERT:
        logger.debug(
            f"Loading local TLS material cert={cluster.local_cert} "
            f"key={cluster.local_key} ca={cluster.local_ca}"
        )
        context = ssl.create_default_context(cafile=cluster.local_ca)
        if cluster.local_cert:
            context.load_cert_chain(cluster.local_cert, cluster.local_key)
        return context

    return ssl.create_default_context()

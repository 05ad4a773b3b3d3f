"""Fetch the certificate chain a TLS server presents.

The handshake is done with verification disabled; the chain is verified
afterwards with :mod:`certscope.verifier` so the result can be reported.
"""

import logging
import socket
import ssl
from typing import List, Optional, Tuple

from .errors import ConnectError
from .models import CertificateRecord

logger = logging.getLogger(__name__)

DEFAULT_PORT = 443


def parse_address(address: str) -> Tuple[str, int]:
    """Split ``host[:port]`` (IPv6 hosts in brackets) into host and port"""
    address = address.strip()
    if not address:
        raise ConnectError("no address given")

    if address.startswith('['):
        host, _, rest = address[1:].partition(']')
        port = rest[1:] if rest.startswith(':') else ''
    elif address.count(':') == 1:
        host, _, port = address.partition(':')
    else:
        host, port = address, ''

    if not port:
        return host, DEFAULT_PORT
    try:
        number = int(port)
    except ValueError:
        raise ConnectError(f"invalid port '{port}'") from None
    if not 1 <= number <= 65535:
        raise ConnectError(f"invalid port {number}")
    return host, number


def fetch_peer_chain(address: str, server_name: Optional[str] = None,
                     timeout: float = 10) -> List[CertificateRecord]:
    """Connect to ``address`` and return the certificates the peer sent."""
    host, port = parse_address(address)
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE

    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            with context.wrap_socket(sock, server_hostname=server_name or host) as ssock:
                logger.debug("connected to %s:%d using %s %s", host, port, ssock.version(), ssock.cipher()[0])
                if hasattr(ssock, 'get_unverified_chain'):
                    chain = list(ssock.get_unverified_chain())
                else:
                    peer = ssock.getpeercert(binary_form=True)
                    chain = [peer] if peer else []
    except (socket.error, ssl.SSLError, OSError) as e:
        raise ConnectError(f"error connecting to {host}:{port}: {e}") from e

    if not chain:
        raise ConnectError(f"{host}:{port} presented no certificates")
    return [CertificateRecord.from_der(der) for der in chain]

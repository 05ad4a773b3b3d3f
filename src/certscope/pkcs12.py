"""PKCS#12 (PFX) key store decoding."""

import logging
from typing import Callable, List

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import pkcs12
from pyasn1.codec.ber import decoder
from pyasn1.error import PyAsn1Error
from pyasn1_modules import rfc5652, rfc7292

from .errors import BadPassword, MalformedContainer
from .models import CertificateRecord, ContainerBlock

logger = logging.getLogger(__name__)

AUTH_SAFE_TYPES = (rfc5652.id_data, rfc5652.id_signedData)


def _check_structure(data: bytes):
    try:
        pfx, rest = decoder.decode(data, asn1Spec=rfc7292.PFX())
    except PyAsn1Error as e:
        raise MalformedContainer(f"invalid PKCS12 structure: {e}") from e
    if rest:
        raise MalformedContainer(f"trailing data after PKCS12 structure ({len(rest)} bytes)")
    if int(pfx['version']) != 3:
        raise MalformedContainer(f"unsupported PKCS12 version {int(pfx['version'])}")
    if pfx['authSafe']['contentType'] not in AUTH_SAFE_TYPES:
        raise MalformedContainer(f"unsupported PKCS12 authSafe type {pfx['authSafe']['contentType']}")
    return pfx


def looks_like_pkcs12(data: bytes) -> bool:
    """Structural probe: does ``data`` parse as a version 3 PFX?"""
    try:
        _check_structure(data)
    except MalformedContainer:
        return False
    return True


def decode(data: bytes, password_resolver: Callable[[str], str]) -> List[ContainerBlock]:
    """Decrypt a PKCS#12 container and return its certificates.

    The resolver is asked once for the container password (empty alias).
    Authentication failure raises :class:`BadPassword` and nothing is
    returned.
    """
    _check_structure(data)

    secret = password_resolver('')
    password = secret.encode('utf-8') if secret else None
    try:
        bundle = pkcs12.load_pkcs12(data, password)
    except UnsupportedAlgorithm as e:
        raise MalformedContainer(f"unsupported PKCS12 encryption: {e}") from e
    except ValueError as e:
        raise BadPassword("incorrect password or corrupted PKCS12 data") from e

    certs = []
    if bundle.cert is not None:
        certs.append(bundle.cert.certificate)
    certs.extend(entry.certificate for entry in bundle.additional_certs)
    logger.debug("PKCS12 container holds %d certificate(s)", len(certs))

    return [ContainerBlock.for_certificate(CertificateRecord.from_certificate(cert)) for cert in certs]

"""Certificate extraction from PKCS#7 signed-data envelopes.

Only the certificate set is read; signer infos and the signature itself are
not verified since they are not needed for display or chain building.
"""

from typing import List

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.serialization import pkcs7
from pyasn1.codec.ber import decoder
from pyasn1.error import PyAsn1Error
from pyasn1_modules import rfc2315

from .errors import MalformedPkcs7
from .models import CertificateRecord


def _signed_data(data: bytes):
    try:
        content_info, rest = decoder.decode(data, asn1Spec=rfc2315.ContentInfo())
    except PyAsn1Error as e:
        raise MalformedPkcs7(f"invalid PKCS7 content info: {e}") from e
    if rest:
        raise MalformedPkcs7(f"trailing data after PKCS7 envelope ({len(rest)} bytes)")

    content_type = content_info['contentType']
    if content_type != rfc2315.signedData:
        raise MalformedPkcs7(f"unsupported PKCS7 content type {content_type}, expected signed-data")
    if not content_info['content'].isValue:
        raise MalformedPkcs7("PKCS7 signed-data envelope has no content")

    try:
        signed, _ = decoder.decode(bytes(content_info['content']), asn1Spec=rfc2315.SignedData())
    except PyAsn1Error as e:
        raise MalformedPkcs7(f"invalid PKCS7 signed-data: {e}") from e
    return signed


def is_pkcs7(data: bytes) -> bool:
    """True when ``data`` is structurally a signed-data ContentInfo"""
    try:
        _signed_data(data)
    except MalformedPkcs7:
        return False
    return True


def extract_certificates(data: bytes) -> List[CertificateRecord]:
    """Return the certificates of a DER/BER signed-data envelope in order."""
    signed = _signed_data(bytes(data))
    if not signed['certificates'].isValue or len(signed['certificates']) == 0:
        return []

    try:
        certs = pkcs7.load_der_pkcs7_certificates(bytes(data))
    except (ValueError, UnsupportedAlgorithm) as e:
        raise MalformedPkcs7(f"unable to read PKCS7 certificates: {e}") from e

    return [CertificateRecord.from_certificate(cert) for cert in certs]

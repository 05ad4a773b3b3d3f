"""Input format detection.

Detection only looks at a byte buffer; it never reads from a stream, so the
loader buffers each source before calling :func:`detect`.
"""

import logging
import os
from enum import Enum
from typing import Optional

from cryptography import x509

from . import jceks, pkcs12, pkcs7
from .errors import UnknownFormat
from .pem import has_pem_marker

logger = logging.getLogger(__name__)


class Format(Enum):
    PEM = 'PEM'
    DER = 'DER'
    PKCS12 = 'PKCS12'
    JCEKS = 'JCEKS'


FORMAT_ALIASES = {
    'PEM': Format.PEM,
    'DER': Format.DER,
    'PKCS12': Format.PKCS12,
    'P12': Format.PKCS12,
    'PFX': Format.PKCS12,
    'JCEKS': Format.JCEKS,
    'JKS': Format.JCEKS,
}

EXTENSIONS = {
    '.der': Format.DER,
    '.p12': Format.PKCS12,
    '.pfx': Format.PKCS12,
    '.jceks': Format.JCEKS,
    '.jks': Format.JCEKS,
}


def parse_format(name: str) -> Optional[Format]:
    """Map a user supplied format name to a :class:`Format`.

    The empty string means auto-detect and returns None.
    """
    if not name:
        return None
    try:
        return FORMAT_ALIASES[name.strip().upper()]
    except KeyError:
        raise UnknownFormat(f"unknown format '{name}' (expected PEM, DER, PKCS12 or JCEKS)") from None


def _is_der(data: bytes) -> bool:
    try:
        x509.load_der_x509_certificate(data)
        return True
    except ValueError:
        return pkcs7.is_pkcs7(data)


def detect(data: bytes, hint: str = '', filename: Optional[str] = None) -> Format:
    """Decide which decoder applies to ``data``.

    A recognized ``hint`` wins without looking at the content. Otherwise
    magic numbers and structure are checked, then a DER parse is attempted,
    and the file extension of ``filename`` is the last resort. PEM is never
    guessed from an extension: a ``.crt`` without armor that also fails the
    DER parse is corrupt, not PEM.
    """
    fmt = parse_format(hint)
    if fmt is not None:
        return fmt

    if jceks.is_keystore(data):
        return Format.JCEKS
    if data.lstrip().startswith(b'-----BEGIN'):
        return Format.PEM
    if data[:1] == b'\x30' and pkcs12.looks_like_pkcs12(data):
        return Format.PKCS12
    if has_pem_marker(data):
        return Format.PEM
    if data[:1] == b'\x30' and _is_der(data):
        return Format.DER

    if filename:
        ext = os.path.splitext(filename)[1].lower()
        if ext in EXTENSIONS:
            logger.debug("guessing %s from extension of %s", EXTENSIONS[ext].value, filename)
            return EXTENSIONS[ext]

    raise UnknownFormat("unable to guess input format, try --format")

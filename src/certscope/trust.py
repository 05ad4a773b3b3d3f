"""Trust anchor bundles."""

import functools
import logging
from typing import List, Tuple

import certifi

from .loader import CertificateLoader
from .models import CertificateRecord

logger = logging.getLogger(__name__)


def load_bundle(path: str, format_hint: str = '') -> List[CertificateRecord]:
    """Load trust anchors from a CA bundle file in any supported format"""
    anchors = CertificateLoader(format_hint).load_certificates([path])
    logger.debug("loaded %d trust anchors from %s", len(anchors), path)
    return anchors


@functools.lru_cache(maxsize=1)
def default_trust_anchors() -> Tuple[CertificateRecord, ...]:
    """The platform trust store, as shipped by certifi; loaded once"""
    return tuple(load_bundle(certifi.where(), 'PEM'))

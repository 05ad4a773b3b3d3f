"""Certificate chain verification.

The first certificate is the leaf; the others are untrusted intermediates
that may be used to reach a trust anchor. Every hop is checked by name and
by signature. Failures are reported in the returned :class:`VerifyResult`,
never raised.
"""

import ipaddress
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm

from .models import CertificateRecord, CertificateWarning, VerifyError, VerifyResult
from .trust import default_trust_anchors

logger = logging.getLogger(__name__)

MAX_PATH_DEPTH = 10
WEAK_SIGNATURE_ALGORITHMS = ('md2', 'md5', 'sha1')

Path = Tuple[CertificateRecord, ...]


def _same_certificate(a: CertificateRecord, b: CertificateRecord) -> bool:
    return a.der == b.der or (a.subject == b.subject and a.public_key == b.public_key and bool(a.public_key))


def _signed_by(cert: CertificateRecord, issuer: CertificateRecord) -> bool:
    try:
        cert.certificate.verify_directly_issued_by(issuer.certificate)
    except (InvalidSignature, ValueError, TypeError, UnsupportedAlgorithm):
        return False
    return True


def certificate_warnings(cert: CertificateRecord, now: datetime, expiry_warning_days: int = 30,
                         min_rsa_bits: int = 2048, is_root: bool = False) -> List[str]:
    """Non-fatal problems with a single certificate"""
    warnings = []
    days = cert.days_until_expiry(now)
    if 0 <= days < expiry_warning_days:
        warnings.append(f"certificate expires in {days} days")
    algorithm = cert.signature_algorithm.lower()
    # a self-signed root is trusted as-is, its own signature is not checked
    if not is_root and any(weak in algorithm for weak in WEAK_SIGNATURE_ALGORITHMS):
        warnings.append(f"weak signature algorithm {cert.signature_algorithm}")
    if cert.public_key_algorithm == 'RSA' and cert.public_key_size and cert.public_key_size < min_rsa_bits:
        warnings.append(f"RSA key of {cert.public_key_size} bits is shorter than {min_rsa_bits}")
    return warnings


def _match_name(pattern: str, host: str) -> bool:
    """Match one certificate name; wildcards only as the whole left-most label"""
    pattern = pattern.rstrip('.').lower()
    if pattern == host:
        return True
    if not pattern.startswith('*.'):
        return False
    pattern_labels = pattern.split('.')
    host_labels = host.split('.')
    if len(pattern_labels) < 3 or len(pattern_labels) != len(host_labels):
        return False
    return bool(host_labels[0]) and pattern_labels[1:] == host_labels[1:]


def match_hostname(cert: CertificateRecord, hostname: str) -> bool:
    """Check ``hostname`` against SAN entries, or the CN when there are none"""
    host = hostname.strip().rstrip('.').lower()
    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]
    if not host:
        return False

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        address = None
    if address is not None:
        return any(ipaddress.ip_address(ip) == address for ip in cert.ip_addresses)

    names = cert.dns_names
    if not names and not cert.ip_addresses and cert.common_name:
        names = (cert.common_name,)
    return any(_match_name(name, host) for name in names)


class _PathBuilder:
    """Depth-first search for paths from a leaf to any trust anchor"""

    def __init__(self, anchors: Sequence[CertificateRecord], intermediates: Sequence[CertificateRecord]):
        self.anchors = anchors
        self.intermediates = intermediates
        self.signature_failures: List[Tuple[CertificateRecord, CertificateRecord]] = []
        self.longest: Path = ()

    def is_anchor(self, cert: CertificateRecord) -> bool:
        return any(_same_certificate(cert, anchor) for anchor in self.anchors)

    def _issues(self, issuer: CertificateRecord, cert: CertificateRecord) -> bool:
        if issuer.certificate.subject != cert.certificate.issuer:
            return False
        if not _signed_by(cert, issuer):
            self.signature_failures.append((cert, issuer))
            return False
        return True

    @staticmethod
    def _may_sign(issuer: CertificateRecord, below: int, trusted: bool) -> bool:
        if issuer.has_basic_constraints and not issuer.is_ca:
            return False
        if not trusted and not issuer.is_ca:
            return False
        if issuer.key_usage and 'Cert Sign' not in issuer.key_usage:
            return False
        return issuer.path_length is None or below <= issuer.path_length

    def build(self, leaf: CertificateRecord) -> List[Path]:
        paths: List[Path] = []
        if self.is_anchor(leaf):
            paths.append((leaf,))
        self._extend((leaf,), paths)
        return paths

    def _extend(self, path: Path, paths: List[Path]):
        if len(path) > len(self.longest):
            self.longest = path
        if len(path) > MAX_PATH_DEPTH:
            return

        current = path[-1]
        below = len(path) - 1
        for anchor in self.anchors:
            if any(_same_certificate(anchor, cert) for cert in path):
                continue
            if self._issues(anchor, current) and self._may_sign(anchor, below, trusted=True):
                paths.append(path + (anchor,))

        for candidate in self.intermediates:
            if any(_same_certificate(candidate, cert) for cert in path) or self.is_anchor(candidate):
                continue
            if self._issues(candidate, current) and self._may_sign(candidate, below, trusted=False):
                self._extend(path + (candidate,), paths)


class ChainVerifier:
    """Verify chains against explicit anchors or the default trust store."""

    def __init__(self, trust_anchors: Optional[Iterable[CertificateRecord]] = None,
                 expiry_warning_days: int = 30, min_rsa_bits: int = 2048):
        self._anchors = tuple(trust_anchors) if trust_anchors is not None else None
        self.expiry_warning_days = expiry_warning_days
        self.min_rsa_bits = min_rsa_bits

    @property
    def trust_anchors(self) -> Tuple[CertificateRecord, ...]:
        if self._anchors is None:
            return default_trust_anchors()
        return self._anchors

    def _validity_error(self, path: Path, now: datetime) -> Tuple[str, str]:
        for cert in path:
            if now > cert.not_after:
                return VerifyError.EXPIRED, f"certificate '{cert.subject}' expired on {cert.not_after.isoformat()}"
            if now < cert.not_before:
                return VerifyError.NOT_YET_VALID, f"certificate '{cert.subject}' is not valid before {cert.not_before.isoformat()}"
        return '', ''

    def _warnings(self, path: Path, now: datetime, complete: bool) -> Tuple[CertificateWarning, ...]:
        warnings = []
        for position, cert in enumerate(path):
            is_root = complete and position == len(path) - 1 and cert.self_signed
            for message in certificate_warnings(cert, now, self.expiry_warning_days, self.min_rsa_bits, is_root):
                warnings.append(CertificateWarning(cert.subject, message))
        return tuple(warnings)

    def verify(self, certificates: Iterable[CertificateRecord], hostname: Optional[str],
               now: Optional[datetime] = None) -> VerifyResult:
        now = now or datetime.now(timezone.utc)
        presented = tuple(certificates)
        hostname = hostname or ''
        if not presented:
            return VerifyResult(presented, (), hostname, VerifyError.UNKNOWN_AUTHORITY,
                                "no certificates to verify")

        leaf = presented[0]
        builder = _PathBuilder(self.trust_anchors, presented[1:])
        paths = builder.build(leaf)
        timely = [path for path in paths if all(cert.is_valid_at(now) for cert in path)]

        if timely:
            checked = timely[0]
        elif paths:
            checked = paths[0]
        else:
            checked = builder.longest or (leaf,)

        error, detail = self._validity_error(checked if paths else (leaf,), now)
        if not error and hostname and not match_hostname(leaf, hostname):
            names = ', '.join(leaf.dns_names + leaf.ip_addresses) or leaf.common_name or 'no names'
            error, detail = VerifyError.HOSTNAME_MISMATCH, f"certificate is valid for {names}, not {hostname}"
        if not error and not paths:
            if builder.signature_failures:
                cert, issuer = builder.signature_failures[0]
                error = VerifyError.SIGNATURE_INVALID
                detail = f"signature of '{cert.subject}' does not verify with the key of '{issuer.subject}'"
            else:
                error = VerifyError.UNKNOWN_AUTHORITY
                detail = f"certificate signed by unknown authority '{checked[-1].issuer}'"

        logger.debug("verified %s against %d anchors: %s", leaf.subject, len(builder.anchors), error or 'ok')
        return VerifyResult(
            certificates=presented,
            chains=tuple(timely) if not error else (),
            hostname=hostname,
            error=error,
            detail=detail,
            warnings=self._warnings(checked, now, complete=bool(paths)),
            expires_in_days=min(cert.days_until_expiry(now) for cert in checked),
            partial_chain=checked if error else (),
        )


def verify(certificates: Iterable[CertificateRecord], hostname: Optional[str],
           trust_anchors: Optional[Iterable[CertificateRecord]] = None,
           now: Optional[datetime] = None, **options) -> VerifyResult:
    return ChainVerifier(trust_anchors, **options).verify(certificates, hostname, now)

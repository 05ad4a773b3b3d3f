"""Immutable value types shared by the decoders and the chain verifier."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import ExtensionOID, NameOID, AuthorityInformationAccessOID

from .errors import ParseError


KEY_USAGE_NAMES = [
    ('digital_signature', 'Digital Signature'),
    ('content_commitment', 'Content Commitment'),
    ('key_encipherment', 'Key Encipherment'),
    ('data_encipherment', 'Data Encipherment'),
    ('key_agreement', 'Key Agreement'),
    ('key_cert_sign', 'Cert Sign'),
    ('crl_sign', 'CRL Sign'),
]


def _oid_name(oid: x509.ObjectIdentifier) -> str:
    name = getattr(oid, '_name', None)
    if not name or name == 'Unknown OID':
        return oid.dotted_string
    return name


def _public_key_details(cert: x509.Certificate) -> Tuple[str, Optional[int], bytes]:
    """Return (algorithm, size in bits, SubjectPublicKeyInfo DER)"""
    try:
        key = cert.public_key()
    except (ValueError, UnsupportedAlgorithm):
        return _oid_name(cert.public_key_algorithm_oid), None, b''

    spki = key.public_bytes(serialization.Encoding.DER,
                            serialization.PublicFormat.SubjectPublicKeyInfo)
    if isinstance(key, rsa.RSAPublicKey):
        return 'RSA', key.key_size, spki
    if isinstance(key, ec.EllipticCurvePublicKey):
        return 'ECDSA', key.curve.key_size, spki
    if isinstance(key, dsa.DSAPublicKey):
        return 'DSA', key.key_size, spki
    if isinstance(key, ed25519.Ed25519PublicKey):
        return 'Ed25519', 256, spki
    if isinstance(key, ed448.Ed448PublicKey):
        return 'Ed448', 456, spki
    return _oid_name(cert.public_key_algorithm_oid), None, spki


def _extension(extensions: x509.Extensions, oid):
    try:
        return extensions.get_extension_for_oid(oid).value
    except x509.ExtensionNotFound:
        return None


def _key_usage(value: Optional[x509.KeyUsage]) -> Tuple[str, ...]:
    if value is None:
        return ()
    usages = [label for attr, label in KEY_USAGE_NAMES if getattr(value, attr)]
    if value.key_agreement:
        if value.encipher_only:
            usages.append('Encipher Only')
        if value.decipher_only:
            usages.append('Decipher Only')
    return tuple(usages)


@dataclass(frozen=True)
class CertificateRecord:
    """A decoded X.509 certificate.

    Every structured field is derived from ``der``; the record never changes
    after construction. Use :meth:`from_der` or :meth:`from_certificate`
    rather than the constructor.
    """
    der: bytes = field(repr=False)
    version: int
    serial_number: int
    subject: str
    issuer: str
    common_name: Optional[str]
    not_before: datetime
    not_after: datetime
    public_key_algorithm: str
    public_key_size: Optional[int]
    public_key: bytes = field(repr=False)
    signature_algorithm: str
    signature: bytes = field(repr=False)
    is_ca: bool
    path_length: Optional[int]
    has_basic_constraints: bool
    key_usage: Tuple[str, ...]
    extended_key_usage: Tuple[str, ...]
    dns_names: Tuple[str, ...]
    ip_addresses: Tuple[str, ...]
    email_addresses: Tuple[str, ...]
    uris: Tuple[str, ...]
    subject_key_id: Optional[str]
    authority_key_id: Optional[str]
    ocsp_servers: Tuple[str, ...]
    issuing_certificate_urls: Tuple[str, ...]
    sha256_fingerprint: str
    sha1_fingerprint: str
    self_signed: bool
    _certificate: x509.Certificate = field(repr=False, compare=False, hash=False, default=None)

    @classmethod
    def from_der(cls, der: bytes) -> 'CertificateRecord':
        try:
            cert = x509.load_der_x509_certificate(bytes(der))
        except ValueError as e:
            raise ParseError(f"unable to parse certificate: {e}") from e
        return cls.from_certificate(cert)

    @classmethod
    def from_certificate(cls, cert: x509.Certificate) -> 'CertificateRecord':
        der = cert.public_bytes(serialization.Encoding.DER)
        try:
            extensions = cert.extensions
            cn_attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
            subject = cert.subject.rfc4514_string()
            issuer = cert.issuer.rfc4514_string()
            version = cert.version.value + 1
        except (ValueError, x509.InvalidVersion) as e:
            raise ParseError(f"unable to decode certificate fields: {e}") from e

        algorithm, key_size, spki = _public_key_details(cert)

        constraints = _extension(extensions, ExtensionOID.BASIC_CONSTRAINTS)
        eku = _extension(extensions, ExtensionOID.EXTENDED_KEY_USAGE)
        san = _extension(extensions, ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
        ski = _extension(extensions, ExtensionOID.SUBJECT_KEY_IDENTIFIER)
        aki = _extension(extensions, ExtensionOID.AUTHORITY_KEY_IDENTIFIER)
        aia = _extension(extensions, ExtensionOID.AUTHORITY_INFORMATION_ACCESS)

        ocsp, ca_issuers = [], []
        for access in aia or []:
            if not isinstance(access.access_location, x509.UniformResourceIdentifier):
                continue
            if access.access_method == AuthorityInformationAccessOID.OCSP:
                ocsp.append(access.access_location.value)
            elif access.access_method == AuthorityInformationAccessOID.CA_ISSUERS:
                ca_issuers.append(access.access_location.value)

        return cls(
            der=der,
            version=version,
            serial_number=cert.serial_number,
            subject=subject,
            issuer=issuer,
            common_name=str(cn_attrs[0].value) if cn_attrs else None,
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            public_key_algorithm=algorithm,
            public_key_size=key_size,
            public_key=spki,
            signature_algorithm=_oid_name(cert.signature_algorithm_oid),
            signature=cert.signature,
            is_ca=bool(constraints and constraints.ca),
            path_length=constraints.path_length if constraints else None,
            has_basic_constraints=constraints is not None,
            key_usage=_key_usage(_extension(extensions, ExtensionOID.KEY_USAGE)),
            extended_key_usage=tuple(_oid_name(oid) for oid in eku or []),
            dns_names=tuple(san.get_values_for_type(x509.DNSName)) if san else (),
            ip_addresses=tuple(str(ip) for ip in san.get_values_for_type(x509.IPAddress)) if san else (),
            email_addresses=tuple(san.get_values_for_type(x509.RFC822Name)) if san else (),
            uris=tuple(san.get_values_for_type(x509.UniformResourceIdentifier)) if san else (),
            subject_key_id=ski.digest.hex() if ski else None,
            authority_key_id=aki.key_identifier.hex() if aki and aki.key_identifier else None,
            ocsp_servers=tuple(ocsp),
            issuing_certificate_urls=tuple(ca_issuers),
            sha256_fingerprint=hashlib.sha256(der).hexdigest(),
            sha1_fingerprint=hashlib.sha1(der).hexdigest(),
            self_signed=cert.subject == cert.issuer,
            _certificate=cert,
        )

    @property
    def certificate(self) -> x509.Certificate:
        """The underlying ``cryptography`` certificate object"""
        return self._certificate

    def to_der(self) -> bytes:
        return self.der

    def to_pem(self) -> str:
        from .pem import armor
        return armor('CERTIFICATE', self.der)

    def days_until_expiry(self, now: datetime) -> int:
        return (self.not_after - now).days

    def is_valid_at(self, now: datetime) -> bool:
        return self.not_before <= now <= self.not_after


class BlockKind(Enum):
    CERTIFICATE = 'Certificate'
    PKCS7_BUNDLE = 'Pkcs7Bundle'
    UNKNOWN = 'Unknown'


@dataclass(frozen=True)
class ContainerBlock:
    """One unit of decoded container content.

    ``certificate`` is set for CERTIFICATE blocks; ``data`` carries the raw
    bytes of PKCS#7 bundles and unknown blocks. ``alias`` names the keystore
    entry the block came from, when there is one.
    """
    kind: BlockKind
    certificate: Optional[CertificateRecord] = None
    data: bytes = field(default=b'', repr=False)
    label: str = ''
    alias: Optional[str] = None

    @classmethod
    def for_certificate(cls, record: CertificateRecord, alias: Optional[str] = None) -> 'ContainerBlock':
        return cls(BlockKind.CERTIFICATE, certificate=record, data=record.der,
                   label='CERTIFICATE', alias=alias)

    @classmethod
    def for_pkcs7(cls, data: bytes, label: str = 'PKCS7') -> 'ContainerBlock':
        return cls(BlockKind.PKCS7_BUNDLE, data=data, label=label)

    @classmethod
    def unknown(cls, label: str, data: bytes) -> 'ContainerBlock':
        return cls(BlockKind.UNKNOWN, data=data, label=label)

    def certificates(self) -> List[CertificateRecord]:
        """Certificates carried by this block (PKCS#7 bundles are expanded)"""
        if self.kind is BlockKind.CERTIFICATE:
            return [self.certificate]
        if self.kind is BlockKind.PKCS7_BUNDLE:
            from .pkcs7 import extract_certificates
            return extract_certificates(self.data)
        return []

    def to_pem(self) -> str:
        from .pem import armor
        if self.kind is BlockKind.CERTIFICATE:
            return self.certificate.to_pem()
        return armor(self.label, self.data)


class VerifyError(str, Enum):
    EXPIRED = 'Expired'
    NOT_YET_VALID = 'NotYetValid'
    HOSTNAME_MISMATCH = 'HostnameMismatch'
    UNKNOWN_AUTHORITY = 'UnknownAuthority'
    SIGNATURE_INVALID = 'SignatureInvalid'

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class CertificateWarning:
    subject: str
    message: str

    def __str__(self):
        return f"{self.subject}: {self.message}"


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of one chain verification.

    ``error`` is the empty string when the chain verified; otherwise it is a
    :class:`VerifyError`, ``detail`` explains it in words and
    ``partial_chain`` holds as much of the path as could be assembled.
    """
    certificates: Tuple[CertificateRecord, ...]
    chains: Tuple[Tuple[CertificateRecord, ...], ...]
    hostname: str
    error: str = ''
    detail: str = ''
    warnings: Tuple[CertificateWarning, ...] = ()
    expires_in_days: Optional[int] = None
    partial_chain: Tuple[CertificateRecord, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.error

    @property
    def chain(self) -> Tuple[CertificateRecord, ...]:
        return self.chains[0] if self.chains else ()

    @property
    def anchor(self) -> Optional[CertificateRecord]:
        return self.chain[-1] if self.chain else None

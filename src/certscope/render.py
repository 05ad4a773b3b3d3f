"""Human-readable and JSON rendering of certificates and verification results."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from colorama import Fore, Style

from .models import CertificateRecord, VerifyResult
from .verifier import certificate_warnings


def certificate_to_dict(cert: CertificateRecord, alias: Optional[str] = None,
                        warnings: Iterable[str] = ()) -> Dict[str, Any]:
    """Machine-readable view of a certificate"""
    data = {
        'serial': str(cert.serial_number),
        'not_before': cert.not_before.isoformat(),
        'not_after': cert.not_after.isoformat(),
        'signature_algorithm': cert.signature_algorithm,
        'is_self_signed': cert.self_signed,
        'subject': cert.subject,
        'issuer': cert.issuer,
        'public_key': {
            'algorithm': cert.public_key_algorithm,
            'size': cert.public_key_size,
        },
        'basic_constraints': {
            'is_ca': cert.is_ca,
            'max_path_len': cert.path_length,
        } if cert.has_basic_constraints else None,
        'key_usage': list(cert.key_usage),
        'extended_key_usage': list(cert.extended_key_usage),
        'dns_names': list(cert.dns_names),
        'ip_addresses': list(cert.ip_addresses),
        'email_addresses': list(cert.email_addresses),
        'uris': list(cert.uris),
        'ocsp_server': list(cert.ocsp_servers),
        'issuing_certificate': list(cert.issuing_certificate_urls),
        'subject_key_id': cert.subject_key_id,
        'authority_key_id': cert.authority_key_id,
        'sha256_fingerprint': cert.sha256_fingerprint,
        'warnings': list(warnings),
        'pem': cert.to_pem(),
    }
    if alias:
        data['alias'] = alias
    return data


def verify_result_to_dict(result: VerifyResult) -> Dict[str, Any]:
    return {
        'hostname': result.hostname,
        'error': str(result.error),
        'detail': result.detail,
        'chains': [[_chain_entry(cert) for cert in chain] for chain in result.chains],
        'partial_chain': [_chain_entry(cert) for cert in result.partial_chain],
        'warnings': [str(w) for w in result.warnings],
        'expires_in_days': result.expires_in_days,
    }


def _chain_entry(cert: CertificateRecord) -> Dict[str, Any]:
    return {
        'subject': cert.subject,
        'issuer': cert.issuer,
        'not_after': cert.not_after.isoformat(),
        'signature_algorithm': cert.signature_algorithm,
    }


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2)


def _paint(text: str, color: str, enabled: bool) -> str:
    return f"{color}{text}{Style.RESET_ALL}" if enabled else text


def display_certificate(cert: CertificateRecord, alias: Optional[str] = None,
                        now: Optional[datetime] = None, color: bool = False,
                        expiry_warning_days: int = 30, min_rsa_bits: int = 2048) -> str:
    """Text description of one certificate, in the style of ``dump``"""
    now = now or datetime.now(timezone.utc)
    lines = []
    if alias:
        lines.append(f"Alias: {alias}")
    lines.append(f"Serial: {cert.serial_number}")
    lines.append(f"Valid: {cert.not_before:%Y-%m-%d %H:%M} UTC to {cert.not_after:%Y-%m-%d %H:%M} UTC")
    key_size = f" {cert.public_key_size} bits" if cert.public_key_size else ''
    lines.append(f"Public Key: {cert.public_key_algorithm}{key_size}")
    signed = ' (self-signed)' if cert.self_signed else ''
    lines.append(f"Signature: {cert.signature_algorithm}{signed}")
    lines.append(f"Subject: {cert.subject}")
    lines.append(f"Issuer: {cert.issuer}")
    if cert.has_basic_constraints:
        constraint = f"CA:{str(cert.is_ca).lower()}"
        if cert.path_length is not None:
            constraint += f", pathlen:{cert.path_length}"
        lines.append(f"Basic Constraints: {constraint}")

    optional = [
        ('OCSP Server(s)', cert.ocsp_servers),
        ('Issuing Certificate URL(s)', cert.issuing_certificate_urls),
        ('Key Usage', cert.key_usage),
        ('Extended Key Usage', cert.extended_key_usage),
        ('DNS Names', cert.dns_names),
        ('IP Addresses', cert.ip_addresses),
        ('Email Addresses', cert.email_addresses),
        ('URIs', cert.uris),
    ]
    for title, values in optional:
        if values:
            lines.append(f"{title}:")
            lines.extend(f"\t{value}" for value in values)

    warnings = certificate_warnings(cert, now, expiry_warning_days, min_rsa_bits, is_root=cert.self_signed)
    if now > cert.not_after:
        warnings.insert(0, "certificate has expired")
    elif now < cert.not_before:
        warnings.insert(0, "certificate is not yet valid")
    if warnings:
        lines.append(_paint('Warnings:', Fore.YELLOW, color))
        lines.extend(_paint(f"\t{w}", Fore.YELLOW, color) for w in warnings)
    return '\n'.join(lines)


def display_certificates(certs: List[CertificateRecord], aliases: Optional[List[Optional[str]]] = None,
                         **options) -> str:
    aliases = aliases or [None] * len(certs)
    sections = []
    for i, (cert, alias) in enumerate(zip(certs, aliases), start=1):
        sections.append(f"** CERTIFICATE {i} **\n" + display_certificate(cert, alias, **options))
    return '\n\n'.join(sections)


def display_verify_result(result: VerifyResult, color: bool = False) -> str:
    lines = []
    if result.error:
        lines.append(_paint(f"Failed to verify certificate chain: {result.error}", Fore.RED, color))
        if result.detail:
            lines.append(f"\t{result.detail}")
        if result.partial_chain:
            lines.append("Partial chain:")
            lines.extend(f"\t=> {cert.subject}" for cert in result.partial_chain)
    else:
        lines.append(_paint(f"Found {len(result.chains)} valid certificate chain(s):", Fore.GREEN, color))
        for i, chain in enumerate(result.chains):
            lines.append(f"[{i}] {chain[0].subject}")
            lines.extend(f"\t=> {cert.subject}" for cert in chain[1:])
        if result.expires_in_days is not None:
            lines.append(f"Chain expires in {result.expires_in_days} days")

    if result.warnings:
        lines.append(_paint("Warnings:", Fore.YELLOW, color))
        lines.extend(_paint(f"\t{w}", Fore.YELLOW, color) for w in result.warnings)
    return '\n'.join(lines)

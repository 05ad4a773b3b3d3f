"""Java key store (JCEKS and JKS) decoding.

Both formats share the Java ``DataOutputStream`` layout::

    magic u4 | version u4 | count u4 | entries... | SHA-1 digest (20 bytes)

The trailing digest covers the UTF-16BE store password, the string
"Mighty Aphrodite" and everything before the digest. Private key entries are
additionally protected with their own password; the key is decrypted only to
authenticate that password and is never returned.
"""

import hashlib
import hmac
import logging
import struct
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, modes
from pyasn1.codec.der import decoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import namedtype, univ
from pyasn1_modules import rfc5208

from .errors import BadPassword, MalformedContainer
from .models import CertificateRecord, ContainerBlock

logger = logging.getLogger(__name__)

JCEKS_MAGIC = 0xCECECECE
JKS_MAGIC = 0xFEEDFEED
MAGICS = (JCEKS_MAGIC, JKS_MAGIC)

PRIVATE_KEY_TAG = 1
TRUSTED_CERT_TAG = 2
SECRET_KEY_TAG = 3

SIGNATURE_WHITENER = b'Mighty Aphrodite'
DIGEST_SIZE = 20

JCE_PBE_OID = '1.3.6.1.4.1.42.2.19.1'      # PBEWithMD5AndTripleDES
JKS_PROTECTOR_OID = '1.3.6.1.4.1.42.2.17.1.1'


class PBEParameter(univ.Sequence):
    componentType = namedtype.NamedTypes(
        namedtype.NamedType('salt', univ.OctetString()),
        namedtype.NamedType('iterationCount', univ.Integer())
    )


@dataclass
class _TrustedCertEntry:
    alias: str
    cert_der: bytes


@dataclass
class _PrivateKeyEntry:
    alias: str
    protected_key: bytes
    chain_der: List[bytes]


class _Reader:
    """Big-endian reader over a byte string; truncation is a structural error."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def read(self, size: int) -> bytes:
        if size < 0 or self.remaining < size:
            raise MalformedContainer(f"keystore truncated at offset {self.pos}")
        chunk = self.data[self.pos:self.pos + size]
        self.pos += size
        return chunk

    def u2(self) -> int:
        return struct.unpack('>H', self.read(2))[0]

    def u4(self) -> int:
        return struct.unpack('>I', self.read(4))[0]

    def u8(self) -> int:
        return struct.unpack('>Q', self.read(8))[0]

    def utf(self) -> str:
        return self.read(self.u2()).decode('utf-8', errors='replace')

    def blob(self) -> bytes:
        return self.read(self.u4())

    def certificate(self, version: int) -> bytes:
        if version == 2:
            cert_type = self.utf()
            if cert_type != 'X.509':
                raise MalformedContainer(f"unsupported certificate type '{cert_type}' in keystore")
        return self.blob()


def is_keystore(data: bytes) -> bool:
    return len(data) >= 4 and struct.unpack('>I', data[:4])[0] in MAGICS


def store_digest(password: str, body: bytes) -> bytes:
    return hashlib.sha1(password.encode('utf-16-be') + SIGNATURE_WHITENER + body).digest()


def _invert_salt_half(half: bytes) -> bytes:
    # JCE provider permutation for a salt whose two halves are equal
    salt = bytearray(half)
    salt[2] = salt[1]
    salt[1] = salt[0]
    salt[0] = salt[3]
    return bytes(salt)


def derive_jce_key(password: str, salt: bytes, iterations: int) -> Tuple[bytes, bytes]:
    """PBEWithMD5AndTripleDES key derivation; returns (key, iv)"""
    if len(salt) != 8:
        raise MalformedContainer(f"invalid PBE salt length {len(salt)}")
    try:
        secret = password.encode('ascii')
    except UnicodeEncodeError as e:
        raise BadPassword("keystore entry passwords must be ASCII") from e

    halves = [salt[:4], salt[4:]]
    if halves[0] == halves[1]:
        halves[0] = _invert_salt_half(halves[0])

    derived = b''
    for half in halves:
        block = half
        for _ in range(iterations):
            block = hashlib.md5(block + secret).digest()
        derived += block
    return derived[:24], derived[24:]


def _jce_decrypt(encrypted: bytes, password: str, params) -> bytes:
    try:
        pbe, _ = decoder.decode(bytes(params), asn1Spec=PBEParameter())
    except PyAsn1Error as e:
        raise MalformedContainer(f"invalid PBE parameters: {e}") from e
    if len(encrypted) == 0 or len(encrypted) % 8:
        raise MalformedContainer("encrypted key length is not a multiple of the cipher block size")

    key, iv = derive_jce_key(password, bytes(pbe['salt']), int(pbe['iterationCount']))
    decryptor = Cipher(TripleDES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(encrypted) + decryptor.finalize()
    unpadder = padding.PKCS7(64).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise BadPassword() from e


def _jks_unprotect(protected: bytes, password: str) -> bytes:
    if len(protected) < 2 * DIGEST_SIZE:
        raise MalformedContainer("protected key is too short")
    iv, ciphertext, check = protected[:DIGEST_SIZE], protected[DIGEST_SIZE:-DIGEST_SIZE], protected[-DIGEST_SIZE:]
    secret = password.encode('utf-16-be')

    stream = bytearray()
    block = iv
    while len(stream) < len(ciphertext):
        block = hashlib.sha1(secret + block).digest()
        stream.extend(block)
    plain = bytes(a ^ b for a, b in zip(ciphertext, stream))

    if not hmac.compare_digest(hashlib.sha1(secret + plain).digest(), check):
        raise BadPassword()
    return plain


def recover_private_key(protected: bytes, password: str) -> bytes:
    """Decrypt a protected key entry and return the PKCS#8 PrivateKeyInfo DER."""
    try:
        info, rest = decoder.decode(protected, asn1Spec=rfc5208.EncryptedPrivateKeyInfo())
    except PyAsn1Error as e:
        raise MalformedContainer(f"invalid encrypted private key: {e}") from e

    algorithm = str(info['encryptionAlgorithm']['algorithm'])
    encrypted = bytes(info['encryptedData'])
    if algorithm == JCE_PBE_OID:
        plain = _jce_decrypt(encrypted, password, info['encryptionAlgorithm']['parameters'])
    elif algorithm == JKS_PROTECTOR_OID:
        plain = _jks_unprotect(encrypted, password)
    else:
        raise MalformedContainer(f"unsupported key protection algorithm {algorithm}")

    try:
        _, rest = decoder.decode(plain, asn1Spec=rfc5208.PrivateKeyInfo())
    except PyAsn1Error as e:
        raise BadPassword() from e
    if rest:
        raise BadPassword()
    return plain


def _parse_entries(body: bytes):
    reader = _Reader(body)
    magic = reader.u4()
    if magic not in MAGICS:
        raise MalformedContainer(f"bad keystore magic 0x{magic:08X}")
    version = reader.u4()
    if version not in (1, 2):
        raise MalformedContainer(f"unsupported keystore version {version}")

    entries = []
    for _ in range(reader.u4()):
        tag = reader.u4()
        alias = reader.utf()
        reader.u8()  # creation date
        if tag == PRIVATE_KEY_TAG:
            protected = reader.blob()
            chain = [reader.certificate(version) for _ in range(reader.u4())]
            entries.append(_PrivateKeyEntry(alias, protected, chain))
        elif tag == TRUSTED_CERT_TAG:
            entries.append(_TrustedCertEntry(alias, reader.certificate(version)))
        elif tag == SECRET_KEY_TAG:
            raise MalformedContainer(f"secret key entry [{alias}] is not supported")
        else:
            raise MalformedContainer(f"unknown keystore entry tag {tag}")

    if reader.remaining:
        raise MalformedContainer(f"{reader.remaining} unexpected bytes after keystore entries")
    return magic, entries


def decode(data: bytes, password_resolver: Callable[[str], str]) -> List[ContainerBlock]:
    """Authenticate a JCEKS/JKS key store and return its certificates.

    The store password is requested with the empty alias, then each private
    key entry's password with that entry's alias. Certificates are returned
    in store order, tagged with their entry alias.
    """
    if len(data) < 12 + DIGEST_SIZE:
        raise MalformedContainer("keystore is too short")
    body, digest = data[:-DIGEST_SIZE], data[-DIGEST_SIZE:]
    magic, entries = _parse_entries(body)
    logger.debug("%s keystore with %d entries",
                 'JCEKS' if magic == JCEKS_MAGIC else 'JKS', len(entries))

    if not hmac.compare_digest(store_digest(password_resolver(''), body), digest):
        raise BadPassword("keystore integrity check failed, password incorrect or data corrupted")

    passwords: Dict[str, str] = {}
    blocks = []
    for entry in entries:
        if isinstance(entry, _TrustedCertEntry):
            blocks.append(ContainerBlock.for_certificate(CertificateRecord.from_der(entry.cert_der), entry.alias))
            continue

        if entry.alias not in passwords:
            passwords[entry.alias] = password_resolver(entry.alias)
        try:
            recover_private_key(entry.protected_key, passwords[entry.alias])
        except BadPassword as e:
            raise BadPassword(alias=entry.alias) from e
        for der in entry.chain_der:
            blocks.append(ContainerBlock.for_certificate(CertificateRecord.from_der(der), entry.alias))

    return blocks

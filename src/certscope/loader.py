"""Certificate loading across all supported input formats.

The loader buffers each source, detects its format and hands it to the
matching decoder. Blocks are produced in discovery order, sources in the
order given. A broken PEM block is skipped with a warning; any other
decoding failure aborts the whole load.
"""

import io
import logging
import os
from typing import Callable, Iterable, Iterator, List, Optional, Tuple, Union

from . import jceks, pkcs12, pkcs7
from .detect import Format, detect, parse_format
from .errors import MalformedContainer, ParseError
from .models import CertificateRecord, ContainerBlock
from .passwords import Resolver, no_password
from .pem import unarmor

logger = logging.getLogger(__name__)

CERTIFICATE_LABELS = ('CERTIFICATE', 'X509 CERTIFICATE', 'TRUSTED CERTIFICATE')
PKCS7_LABELS = ('PKCS7', 'PKCS #7 SIGNED DATA', 'CERTIFICATE CHAIN')

Source = Union[str, os.PathLike, bytes, bytearray, io.IOBase]


def _outer_tlv(data: bytes) -> bytes:
    """Cut ``data`` to its first DER element (drops OpenSSL trust data)"""
    if len(data) < 2:
        return data
    length, offset = data[1], 2
    if length & 0x80:
        count = length & 0x7F
        if count == 0 or len(data) < 2 + count:
            return data
        length = int.from_bytes(data[2:2 + count], 'big')
        offset += count
    return data[:offset + length]


def read_source(source: Source) -> Tuple[Optional[str], bytes]:
    """Return (name, content) for a path, a byte string or a binary stream.

    Paths are opened and closed here; streams belong to the caller and are
    only read.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return None, bytes(source)
    if isinstance(source, (str, os.PathLike)):
        with open(source, 'rb') as f:
            return os.fspath(source), f.read()

    stream = getattr(source, 'buffer', source)
    data = stream.read()
    if isinstance(data, str):
        data = data.encode('utf-8')
    return getattr(source, 'name', None), data


class CertificateLoader:
    """Turn input sources into :class:`ContainerBlock` values.

    ``password_resolver`` is called synchronously by the container decoders;
    ``format_hint`` forces a format (empty string means auto-detect).
    """

    def __init__(self, format_hint: str = '', password_resolver: Optional[Resolver] = None):
        parse_format(format_hint)
        self.format_hint = format_hint or ''
        self.password_resolver = password_resolver or no_password
        self.warnings: List[str] = []

    def _warn(self, message: str):
        self.warnings.append(message)

    def iter_blocks(self, sources: Iterable[Source]) -> Iterator[ContainerBlock]:
        for source in sources:
            name, data = read_source(source)
            yield from self.decode(data, name)

    def load(self, sources: Iterable[Source], on_block: Callable[[ContainerBlock], None]):
        for block in self.iter_blocks(sources):
            on_block(block)

    def load_certificates(self, sources: Iterable[Source]) -> List[CertificateRecord]:
        """All certificates from ``sources``, PKCS#7 bundles expanded in place"""
        certs = []
        for block in self.iter_blocks(sources):
            certs.extend(block.certificates())
        return certs

    def decode(self, data: bytes, name: Optional[str] = None) -> Iterator[ContainerBlock]:
        display = name or '<stdin>'
        fmt = detect(data, self.format_hint, name)
        logger.debug("reading %s as %s (%d bytes)", display, fmt.value, len(data))

        if fmt is Format.PEM:
            yield from self._from_pem(data, display)
        elif fmt is Format.DER:
            yield self._from_der(data)
        elif fmt is Format.PKCS12:
            yield from pkcs12.decode(data, self.password_resolver)
        elif fmt is Format.JCEKS:
            yield from jceks.decode(data, self.password_resolver)

    def _from_pem(self, data: bytes, display: str) -> Iterator[ContainerBlock]:
        found = 0
        warned = len(self.warnings)
        for block in unarmor(data, on_warning=self._warn):
            found += 1
            label = block.label.upper()
            if label in CERTIFICATE_LABELS:
                try:
                    record = CertificateRecord.from_der(_outer_tlv(block.body))
                except ParseError as e:
                    message = f"skipping unreadable certificate #{found} in {display}: {e}"
                    logger.warning(message)
                    self._warn(message)
                    continue
                yield ContainerBlock.for_certificate(record)
            elif label in PKCS7_LABELS:
                yield ContainerBlock.for_pkcs7(block.body, block.label)
            else:
                yield ContainerBlock.unknown(block.label, block.body)

        if not found and len(self.warnings) == warned:
            message = f"no PEM blocks found in {display}"
            logger.warning(message)
            self._warn(message)

    def _from_der(self, data: bytes) -> ContainerBlock:
        try:
            return ContainerBlock.for_certificate(CertificateRecord.from_der(data))
        except ParseError as e:
            if pkcs7.is_pkcs7(data):
                return ContainerBlock.for_pkcs7(data)
            raise MalformedContainer(f"input is neither a DER certificate nor a PKCS7 bundle: {e}") from e


def load_certificates(sources: Iterable[Source], format_hint: str = '',
                      password_resolver: Optional[Resolver] = None) -> List[CertificateRecord]:
    return CertificateLoader(format_hint, password_resolver).load_certificates(sources)

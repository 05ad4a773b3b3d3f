"""PEM armor handling.

``unarmor`` walks text line by line and yields every well-formed block in
order of appearance. A broken block is skipped with a warning so that one
corrupt entry does not hide the valid certificates around it.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

BEGIN_RE = re.compile(r'^-----BEGIN ([^-]*)-----\s*$')
END_RE = re.compile(r'^-----END ([^-]*)-----\s*$')
HEADER_RE = re.compile(r'^([A-Za-z0-9-]+):\s*(.*)$')

WarningHandler = Callable[[str], None]


@dataclass(frozen=True)
class PemBlock:
    label: str
    body: bytes = field(repr=False)
    headers: Dict[str, str] = field(default_factory=dict, compare=False)


def armor(label: str, body: bytes) -> str:
    """Encode ``body`` as a PEM block with 64-column lines."""
    b64 = base64.b64encode(body).decode('ascii')
    lines = [b64[i:i+64] for i in range(0, len(b64), 64)]
    return f"-----BEGIN {label}-----\n" + "\n".join(lines) + f"\n-----END {label}-----\n"


def has_pem_marker(data: bytes) -> bool:
    return b'-----BEGIN ' in data


def _warn(message: str, on_warning: Optional[WarningHandler]):
    logger.warning(message)
    if on_warning is not None:
        on_warning(message)


def _decode_body(lines):
    headers = {}
    payload = []
    in_headers = True
    for line in lines:
        if in_headers:
            match = HEADER_RE.match(line)
            if match and not payload:
                headers[match.group(1)] = match.group(2)
                continue
            in_headers = False
        if line:
            payload.append(line)
    return headers, base64.b64decode(''.join(payload), validate=True)


def unarmor(data: bytes, on_warning: Optional[WarningHandler] = None) -> Iterator[PemBlock]:
    """Yield the PEM blocks in ``data``.

    Text outside of BEGIN/END markers is ignored. Blocks with bad base64,
    missing or mismatched END markers are skipped and reported through the
    logger and ``on_warning``.
    """
    text = data.decode('utf-8', errors='replace')
    label = None
    start_line = 0
    body_lines = []

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()

        begin = BEGIN_RE.match(line)
        if begin:
            if label is not None:
                _warn(f"PEM block '{label}' at line {start_line} has no END marker, skipping", on_warning)
            label = begin.group(1).strip()
            start_line = lineno
            body_lines = []
            continue

        if label is None:
            continue

        end = END_RE.match(line)
        if end:
            end_label = end.group(1).strip()
            if end_label != label:
                _warn(f"PEM block '{label}' at line {start_line} ends with '{end_label}', skipping", on_warning)
            else:
                try:
                    headers, body = _decode_body(body_lines)
                except (binascii.Error, ValueError) as e:
                    _warn(f"PEM block '{label}' at line {start_line} has invalid base64 ({e}), skipping", on_warning)
                else:
                    if body:
                        yield PemBlock(label, body, headers)
                    else:
                        _warn(f"PEM block '{label}' at line {start_line} is empty, skipping", on_warning)
            label = None
            continue

        body_lines.append(line)

    if label is not None:
        _warn(f"PEM block '{label}' at line {start_line} has no END marker, skipping", on_warning)

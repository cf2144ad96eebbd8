"""Embedded round-trip payload.

Layout: ``MAGIC (17 bytes) | length (u64 little-endian) | base64 body``.
The body is the base64 text of a serialized ``.npz`` archive. Codecs append
the payload to a foreign container (DICOM private tag, NIfTI extension) and
recover it later by scanning the whole byte stream for ``MAGIC``.
"""

import base64
import binascii
import logging
import re
import struct
from typing import Optional

logger = logging.getLogger(__name__)

MAGIC = b"MEDCONVERT-NPZ\x00\x01\x02"
LENGTH_FORMAT = "<Q"
HEADER_SIZE = len(MAGIC) + struct.calcsize(LENGTH_FORMAT)

_B64_ALPHABET = re.compile(rb"^[A-Za-z0-9+/]*$")
_WHITESPACE = re.compile(rb"\s+")


def b64_decode(text: bytes) -> Optional[bytes]:
    """Decode standard base64, skipping whitespace and stopping at the first pad."""
    body = _WHITESPACE.sub(b"", text).split(b"=", 1)[0]
    if not _B64_ALPHABET.match(body) or len(body) % 4 == 1:
        return None
    body += b"=" * (-len(body) % 4)
    try:
        return base64.b64decode(body, validate=True)
    except binascii.Error:
        return None


def pack(archive_bytes: bytes) -> bytes:
    body = base64.b64encode(archive_bytes)
    return MAGIC + struct.pack(LENGTH_FORMAT, len(body)) + body


def unpack(stream: bytes) -> Optional[bytes]:
    """Decode a payload that starts at offset 0 of ``stream``.

    Returns:
        The archive bytes, or None when the magic, length or body is invalid
    """
    stream = bytes(stream)
    if len(stream) < HEADER_SIZE or not stream.startswith(MAGIC):
        return None
    (length,) = struct.unpack_from(LENGTH_FORMAT, stream, len(MAGIC))
    if length > len(stream) - HEADER_SIZE:
        return None
    return b64_decode(stream[HEADER_SIZE:HEADER_SIZE + length])


def scan_and_unpack(data: bytes) -> Optional[bytes]:
    """Find the first ``MAGIC`` anywhere in ``data`` and unpack from there."""
    data = bytes(data)
    offset = data.find(MAGIC)
    if offset < 0:
        logger.debug("No embedded payload found")
        return None
    archive_bytes = unpack(data[offset:])
    if archive_bytes is None:
        logger.debug(f"Embedded payload at offset {offset} failed validation")
    return archive_bytes

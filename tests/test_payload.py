import base64
import struct

from medconvert import payload


def test_pack_layout():
    packed = payload.pack(b"hello")
    assert packed.startswith(payload.MAGIC)
    (length,) = struct.unpack_from("<Q", packed, len(payload.MAGIC))
    assert length == len(base64.b64encode(b"hello"))
    assert packed[payload.HEADER_SIZE:] == base64.b64encode(b"hello")


def test_unpack_roundtrip():
    data = bytes(range(256)) * 3
    assert payload.unpack(payload.pack(data)) == data


def test_scan_finds_payload_inside_container():
    data = b"\x00" * 300 + payload.pack(b"archive") + b"trailing"
    assert payload.scan_and_unpack(data) == b"archive"


def test_scan_without_magic_returns_none():
    assert payload.scan_and_unpack(b"DICM" + b"\x00" * 64) is None


def test_length_past_end_is_rejected():
    packed = payload.MAGIC + struct.pack("<Q", 1000) + b"QUJD"
    assert payload.unpack(packed) is None


def test_wrong_magic_is_rejected():
    packed = payload.pack(b"abc")
    assert payload.unpack(b"X" + packed[1:]) is None


def test_b64_decode_ignores_whitespace_and_stops_at_pad():
    assert payload.b64_decode(b"aGVs\nbG8=") == b"hello"
    assert payload.b64_decode(b"aGVsbG8=garbage") == b"hello"


def test_b64_decode_rejects_invalid_text():
    assert payload.b64_decode(b"a$bc") is None
    assert payload.b64_decode(b"abcde") is None

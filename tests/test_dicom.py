import io
import struct

import numpy as np
import pydicom
import pytest
from pydicom.uid import ExplicitVRLittleEndian

from medconvert.codecs import dicom
from medconvert.config import PRIVATE_CREATOR, PRIVATE_GROUP
from medconvert.errors import MalformedInput, MissingTag, TruncatedPixelData


def _element(group: int, elem: int, vr: bytes, value: bytes) -> bytes:
    if vr in (b"OB", b"OW"):
        return struct.pack("<HH", group, elem) + vr + b"\x00\x00" + struct.pack("<I", len(value)) + value
    return struct.pack("<HH", group, elem) + vr + struct.pack("<H", len(value)) + value


def _minimal_dicom(rows: int, cols: int, pixel_data=None) -> bytes:
    """Hand-built Part 10 stream without any embedded payload."""
    ts = _element(0x0002, 0x0010, b"UI", b"1.2.840.10008.1.2.1\x00")
    meta = _element(0x0002, 0x0000, b"UL", struct.pack("<I", len(ts))) + ts
    body = _element(0x0028, 0x0010, b"US", struct.pack("<H", rows))
    body += _element(0x0028, 0x0011, b"US", struct.pack("<H", cols))
    if pixel_data is not None:
        body += _element(0x7FE0, 0x0010, b"OW", pixel_data)
    return b"\x00" * 128 + b"DICM" + meta + body


def test_roundtrip_preserves_every_array(sample_archive):
    archive = dict(sample_archive, spacing=np.array([0.5, 0.5, 2.0]))
    decoded = dicom.decode(dicom.encode_archive(archive))

    assert sorted(decoded) == sorted(archive)
    for key, value in archive.items():
        assert decoded[key].dtype == value.dtype
        np.testing.assert_array_equal(decoded[key], value)


def test_encoded_stream_is_readable_by_pydicom(sample_archive):
    encoded = dicom.encode_archive(sample_archive)
    assert encoded[128:132] == b"DICM"

    ds = pydicom.dcmread(io.BytesIO(encoded))
    assert ds.file_meta.TransferSyntaxUID == ExplicitVRLittleEndian
    assert ds.Rows == 32
    assert ds.Columns == 32
    assert ds.BitsAllocated == 16
    assert ds.PhotometricInterpretation == "MONOCHROME2"
    np.testing.assert_array_equal(ds.pixel_array, sample_archive["image"])

    block = ds.private_block(PRIVATE_GROUP, PRIVATE_CREATOR)
    assert block[0x10].VR == "OB"


def test_pixels_are_clamped_to_uint16():
    image = np.array([[-5.0, 70000.0], [np.nan, 12.4]], dtype=np.float32)
    ds = pydicom.dcmread(io.BytesIO(dicom.encode(image, b"")))
    np.testing.assert_array_equal(ds.pixel_array, np.array([[0, 65535], [0, 12]], dtype=np.uint16))


def test_crop_is_applied_before_encoding(sample_archive):
    decoded = dicom.decode(dicom.encode_archive(sample_archive, crop=(10, 20, 5, 15)))
    assert decoded["image"].shape == (10, 10)
    np.testing.assert_array_equal(decoded["image"], sample_archive["image"][5:15, 10:20])


def test_fallback_reads_pixel_data():
    pixels = np.arange(16, dtype="<u2").reshape(4, 4)
    decoded = dicom.decode(_minimal_dicom(4, 4, pixels.tobytes()))
    assert list(decoded) == ["image"]
    assert decoded["image"].dtype == np.uint16
    np.testing.assert_array_equal(decoded["image"], pixels)


def test_fallback_truncated_pixel_data():
    with pytest.raises(TruncatedPixelData):
        dicom.decode(_minimal_dicom(4, 4, b"\x01\x00" * 8))


def test_fallback_missing_pixel_data():
    with pytest.raises(MissingTag):
        dicom.decode(_minimal_dicom(4, 4))


def test_missing_dicm_marker():
    with pytest.raises(MalformedInput):
        dicom.decode(b"\x00" * 200)


def test_unreadable_embedded_archive_falls_back_to_pixel_data():
    pixels = np.arange(16, dtype=np.uint16).reshape(4, 4)
    decoded = dicom.decode(dicom.encode(pixels, b"not an npz archive"))
    assert list(decoded) == ["image"]
    np.testing.assert_array_equal(decoded["image"], pixels)

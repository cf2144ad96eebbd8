import numpy as np
import pytest

from medconvert.arrays import (
    archive_from_bytes,
    archive_to_bytes,
    check_dtype,
    check_voxel_array,
    crop_archive,
    crop_array,
    extract_2d,
    load_archive,
    resolve_annotation_key,
    resolve_raw_key,
)
from medconvert.errors import IOFailure, MalformedInput, ShapeMismatch, UnsupportedEncoding


def test_bool_is_widened_to_uint8():
    assert check_dtype(np.array([True, False])).dtype == np.uint8


def test_unsupported_dtype():
    with pytest.raises(UnsupportedEncoding):
        check_dtype(np.zeros(3, dtype=np.complex64))
    with pytest.raises(UnsupportedEncoding):
        check_dtype(np.zeros(3, dtype=np.int64))


def test_big_endian_supported_dtype_is_accepted():
    assert check_dtype(np.zeros(3, dtype=">f4")).dtype == np.dtype(">f4")


def test_voxel_array_rank():
    with pytest.raises(ShapeMismatch):
        check_voxel_array(np.zeros((2, 2, 2, 2), dtype=np.float32))
    with pytest.raises(ShapeMismatch):
        check_voxel_array(np.float32(1.0))


def test_archive_bytes_roundtrip():
    archive = {"image": np.arange(12, dtype=np.int16).reshape(3, 4), "mask": np.ones(5, dtype=np.uint8)}
    restored = archive_from_bytes(archive_to_bytes(archive))
    assert sorted(restored) == ["image", "mask"]
    assert restored["image"].dtype == np.int16
    np.testing.assert_array_equal(restored["image"], archive["image"])


def test_archive_from_garbage():
    with pytest.raises(MalformedInput):
        archive_from_bytes(b"not a zip archive")


def test_load_missing_archive(tmp_path):
    with pytest.raises(IOFailure):
        load_archive(tmp_path / "missing.npz")


@pytest.mark.parametrize(
    "shape, expected",
    [
        ((4, 5), (4, 5)),
        ((1, 1, 4, 5), (4, 5)),
        ((3, 4, 5), (4, 5)),
        ((6, 5, 3), (6, 5)),
    ],
)
def test_extract_2d_shapes(shape, expected):
    plane = extract_2d(np.zeros(shape, dtype=np.uint16))
    assert plane.shape == expected
    assert plane.dtype == np.float32


def test_extract_2d_takes_first_channel():
    arr = np.stack([np.full((4, 5), 7), np.full((4, 5), 9)]).astype(np.uint8)
    assert float(extract_2d(arr)[0, 0]) == 7.0


def test_extract_2d_rejects_true_volume():
    with pytest.raises(ShapeMismatch):
        extract_2d(np.zeros((6, 7, 8), dtype=np.float32))


def test_crop_in_bounds():
    arr = np.arange(32 * 32).reshape(32, 32)
    cropped = crop_array(arr, (10, 20, 5, 15))
    assert cropped.shape == (10, 10)
    np.testing.assert_array_equal(cropped, arr[5:15, 10:20])


@pytest.mark.parametrize("crop", [(0, 40, 0, 10), (20, 10, 0, 10), (-1, -1, -1, -1), None])
def test_crop_out_of_bounds_or_sentinel_is_noop(crop):
    arr = np.arange(32 * 32).reshape(32, 32)
    np.testing.assert_array_equal(crop_array(arr, crop), arr)


def test_crop_archive_skips_non_2d_entries():
    archive = {"image": np.zeros((32, 32)), "spacing": np.ones(3)}
    cropped = crop_archive(archive, (0, 8, 0, 4))
    assert cropped["image"].shape == (4, 8)
    assert cropped["spacing"].shape == (3,)


def test_key_resolution():
    assert resolve_raw_key(["label", "ct"]) == "ct"
    assert resolve_raw_key(["foo", "bar"]) == "foo"
    assert resolve_raw_key([]) is None
    assert resolve_raw_key(["image", "mine"], preferred="mine") == "mine"
    assert resolve_annotation_key(["image", "mask"], "image") == "mask"
    assert resolve_annotation_key(["image", "other"], "image") == "other"
    assert resolve_annotation_key(["image"], "image") is None

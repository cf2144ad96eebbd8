import io
import struct
import zlib

import numpy as np
import pytest
from PIL import Image

from medconvert.errors import ShapeMismatch
from medconvert.mesh import build_texture, encode_png, project_volume


def test_projection_averages_along_z():
    volume = np.zeros((2, 2, 3), dtype=np.float32)
    volume[0] = [[0, 10, 20], [30, 40, 50]]
    volume[1] = [[0, 10, 20], [30, 40, 50]]
    rgb = project_volume(volume)

    assert rgb.shape == (2, 3, 3)
    assert rgb.dtype == np.uint8
    np.testing.assert_array_equal(rgb[..., 0], [[0, 51, 102], [153, 204, 255]])
    assert np.all(rgb[..., 0] == rgb[..., 1]) and np.all(rgb[..., 1] == rgb[..., 2])


def test_rounding_half_away_from_zero():
    # 0.5 / 1.0 * 255 = 127.5 -> 128
    volume = np.array([[[0.0, 0.5, 1.0]]], dtype=np.float32)
    np.testing.assert_array_equal(project_volume(volume)[0, :, 0], [0, 128, 255])


def test_constant_volume_is_black():
    assert not project_volume(np.full((3, 4, 4), 7.0)).any()


def test_projection_requires_volume():
    with pytest.raises(ShapeMismatch):
        project_volume(np.zeros((4, 4)))


def test_png_decodes_with_pillow():
    rgb = np.random.default_rng(1).integers(0, 256, size=(5, 7, 3), dtype=np.uint8)
    png = encode_png(rgb)

    with Image.open(io.BytesIO(png)) as img:
        assert img.mode == "RGB"
        assert img.size == (7, 5)
        np.testing.assert_array_equal(np.asarray(img), rgb)


def test_png_chunk_layout():
    png = encode_png(np.zeros((2, 3, 3), dtype=np.uint8))
    assert png[:8] == b"\x89PNG\r\n\x1a\n"

    length, chunk_type = struct.unpack(">I4s", png[8:16])
    assert (length, chunk_type) == (13, b"IHDR")
    assert struct.unpack(">IIBBBBB", png[16:29]) == (3, 2, 8, 2, 0, 0, 0)
    assert struct.unpack(">I", png[29:33])[0] == zlib.crc32(png[12:29])

    idat_length, idat_type = struct.unpack(">I4s", png[33:41])
    assert idat_type == b"IDAT"
    scanlines = zlib.decompress(png[41:41 + idat_length])
    assert scanlines == (b"\x00" + b"\x00" * 9) * 2
    assert png[-12:] == struct.pack(">I", 0) + b"IEND" + struct.pack(">I", zlib.crc32(b"IEND"))


def test_build_texture_is_png_of_projection():
    volume = np.random.default_rng(2).random((3, 6, 4)).astype(np.float32)
    with Image.open(io.BytesIO(build_texture(volume))) as img:
        np.testing.assert_array_equal(np.asarray(img), project_volume(volume))

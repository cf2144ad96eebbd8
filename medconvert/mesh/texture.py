"""Grayscale PNG texture from a raw volume (z-average, min/max normalized)."""

import logging
import struct
import zlib

import numpy as np

from ..errors import ShapeMismatch

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
ZLIB_LEVEL = 1


def project_volume(raw_volume: np.ndarray) -> np.ndarray:
    """Average a (z, h, w) volume along z and map it to an 8-bit gray RGB image.

    Returns:
        (h, w, 3) uint8 array; a constant volume maps to all zeros
    """
    raw_volume = np.asarray(raw_volume, dtype=np.float32)
    if raw_volume.ndim != 3 or 0 in raw_volume.shape:
        raise ShapeMismatch(f"Expected a non-empty (z, h, w) volume, got shape {raw_volume.shape}")

    avg = raw_volume.mean(axis=0, dtype=np.float64)
    lo, hi = float(avg.min()), float(avg.max())
    if hi > lo:
        normalized = (avg - lo) / (hi - lo)
    else:
        normalized = np.zeros_like(avg)

    gray = np.floor(normalized * 255.0 + 0.5).clip(0, 255).astype(np.uint8)
    return np.repeat(gray[:, :, np.newaxis], 3, axis=2)


def _chunk(chunk_type: bytes, data: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def encode_png(rgb: np.ndarray) -> bytes:
    """Encode an (h, w, 3) uint8 image as a truecolor 8-bit PNG.

    Every scanline uses filter type 0 and the stream is deflated at level 1.
    """
    rgb = np.asarray(rgb)
    if rgb.ndim != 3 or rgb.shape[2] != 3:
        raise ShapeMismatch(f"Expected an (h, w, 3) image, got shape {rgb.shape}")
    height, width = rgb.shape[:2]

    rows = np.ascontiguousarray(rgb, dtype=np.uint8).reshape(height, width * 3)
    scanlines = np.concatenate([np.zeros((height, 1), dtype=np.uint8), rows], axis=1)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    png = (
        PNG_SIGNATURE
        + _chunk(b"IHDR", ihdr)
        + _chunk(b"IDAT", zlib.compress(scanlines.tobytes(), ZLIB_LEVEL))
        + _chunk(b"IEND", b"")
    )
    logger.debug(f"Encoded PNG texture {width}x{height} ({len(png)} bytes)")
    return png


def build_texture(raw_volume: np.ndarray) -> bytes:
    """PNG bytes of the z-averaged gray projection of ``raw_volume``."""
    return encode_png(project_volume(raw_volume))

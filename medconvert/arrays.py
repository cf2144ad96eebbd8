"""Voxel array validation, NPZ archive I/O and crop helpers.

A voxel array is a plain ``numpy.ndarray``; a labeled archive is a
``Dict[str, np.ndarray]`` stored on disk with the NumPy ``.npz`` convention.
"""

import io
import logging
import zipfile
from pathlib import Path
from typing import Dict, Iterable, NamedTuple, Optional, Sequence, Union

import numpy as np

from .config import ANNOTATION_KEYS, NO_CROP, RAW_KEYS
from .errors import IOFailure, MalformedInput, ShapeMismatch, UnsupportedEncoding

logger = logging.getLogger(__name__)

SUPPORTED_DTYPES = (
    np.dtype(np.uint8),
    np.dtype(np.uint16),
    np.dtype(np.int16),
    np.dtype(np.int32),
    np.dtype(np.float32),
    np.dtype(np.float64),
)

Archive = Dict[str, np.ndarray]


class CropRect(NamedTuple):
    x_left: int
    x_right: int
    y_left: int
    y_right: int

    @property
    def is_sentinel(self) -> bool:
        return tuple(self) == NO_CROP


def check_dtype(arr: np.ndarray) -> np.ndarray:
    arr = np.asarray(arr)
    if arr.dtype == np.bool_:
        arr = arr.astype(np.uint8)
    if arr.dtype.newbyteorder("=") not in SUPPORTED_DTYPES:
        raise UnsupportedEncoding(f"Unsupported element type: {arr.dtype}")
    return arr


def check_voxel_array(arr: np.ndarray) -> np.ndarray:
    """Validate dtype and dimensionality of an array consumed by a codec.

    Args:
        arr: Candidate voxel array

    Returns:
        The array as an ``np.ndarray`` (bool masks are widened to uint8)
    """
    arr = check_dtype(arr)
    if not 1 <= arr.ndim <= 3:
        raise ShapeMismatch(f"Expected 1-3 dimensions, got shape {arr.shape}")
    return arr


def archive_to_bytes(archive: Archive, compress: bool = True) -> bytes:
    buffer = io.BytesIO()
    if compress:
        np.savez_compressed(buffer, **archive)
    else:
        np.savez(buffer, **archive)
    return buffer.getvalue()


def archive_from_bytes(data: bytes) -> Archive:
    """Deserialize ``.npz`` bytes into a dict of arrays."""
    try:
        with np.load(io.BytesIO(data), allow_pickle=False) as npz:
            return {key: npz[key] for key in npz.files}
    except (ValueError, OSError, EOFError, zipfile.BadZipFile) as e:
        raise MalformedInput(f"Invalid array archive: {e}") from e


def load_archive(path: Union[str, Path]) -> Archive:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise IOFailure(f"Failed to read archive {path}: {e}") from e
    return archive_from_bytes(data)


def save_archive(path: Union[str, Path], archive: Archive) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(archive_to_bytes(archive))
    except OSError as e:
        raise IOFailure(f"Failed to write archive {path}: {e}") from e
    return path


def resolve_raw_key(keys: Iterable[str], preferred: Optional[str] = None) -> Optional[str]:
    keys = list(keys)
    if preferred and preferred in keys:
        return preferred
    for key in RAW_KEYS:
        if key in keys:
            return key
    return keys[0] if keys else None


def resolve_annotation_key(
    keys: Iterable[str],
    raw_key: Optional[str],
    preferred: Optional[str] = None,
) -> Optional[str]:
    keys = list(keys)
    if preferred and preferred in keys:
        return preferred
    for key in ANNOTATION_KEYS:
        if key in keys:
            return key
    for key in keys:
        if key != raw_key:
            return key
    return None


def extract_2d(arr: np.ndarray) -> np.ndarray:
    """Reduce an array to a single 2D float32 plane.

    Singleton axes are squeezed first. A 3D array whose leading axis has at
    most 4 entries is treated as channel-first, otherwise a trailing axis of
    at most 4 entries is treated as channel-last; channel 0 is kept.

    Args:
        arr: Array from a slice archive

    Returns:
        C-ordered float32 array of shape (height, width)
    """
    arr = check_dtype(arr)
    squeezed = arr.reshape([s for s in arr.shape if s != 1])

    if squeezed.ndim == 2:
        plane = squeezed
    elif squeezed.ndim == 3 and squeezed.shape[0] <= 4:
        plane = squeezed[0]
    elif squeezed.ndim == 3 and squeezed.shape[2] <= 4:
        plane = squeezed[:, :, 0]
    else:
        raise ShapeMismatch(f"Cannot reduce shape {arr.shape} to 2D")

    return np.ascontiguousarray(plane, dtype=np.float32)


def as_crop_rect(crop: Optional[Sequence[int]]) -> Optional[CropRect]:
    if crop is None:
        return None
    rect = CropRect(*(int(v) for v in crop))
    return None if rect.is_sentinel else rect


def crop_array(arr: np.ndarray, crop: Optional[Sequence[int]]) -> np.ndarray:
    """Crop a 2D array to ``[y_left:y_right, x_left:x_right]`` when in bounds."""
    rect = as_crop_rect(crop)
    if rect is None or arr.ndim != 2:
        return arr

    height, width = arr.shape
    valid = (
        0 <= rect.x_left < rect.x_right <= width
        and 0 <= rect.y_left < rect.y_right <= height
    )
    if not valid:
        logger.debug(f"Crop {tuple(rect)} outside {width}x{height}, leaving array unmodified")
        return arr
    return arr[rect.y_left:rect.y_right, rect.x_left:rect.x_right].copy()


def crop_archive(archive: Archive, crop: Optional[Sequence[int]]) -> Archive:
    if as_crop_rect(crop) is None:
        return dict(archive)
    return {key: crop_array(value, crop) for key, value in archive.items()}

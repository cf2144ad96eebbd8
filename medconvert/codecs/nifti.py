"""NIfTI-1 single-file encoder/decoder with an embedded round-trip payload.

Voxels are always written as little-endian float32 with an identity sform.
The source archive is stored in one private header extension (ecode 40).
"""

import logging
from typing import Optional, Sequence

import numpy as np
import nibabel as nib
from nibabel.filebasedimages import ImageFileError
from nibabel.spatialimages import HeaderDataError

from .. import payload
from ..arrays import Archive, archive_from_bytes, archive_to_bytes, check_voxel_array, crop_archive, resolve_raw_key
from ..errors import MalformedInput, MissingRequiredField, SliceIndexOutOfRange, UnsupportedDatatype

logger = logging.getLogger(__name__)

HEADER_SIZE = 348
EXTENSION_CODE = 40

# datatype code -> (dtype, bitpix)
SUPPORTED_DATATYPES = {
    16: (np.dtype(np.float32), 32),
    64: (np.dtype(np.float64), 64),
    512: (np.dtype(np.uint16), 16),
}


def encode(array: np.ndarray, archive_bytes: bytes) -> bytes:
    """Encode a 2D/3D array as a single-file NIfTI-1 (``n+1``) byte stream.

    Args:
        array: 2D image or 3D volume; 2D arrays get a trailing z dimension of 1
        archive_bytes: Serialized archive to embed as the round-trip payload

    Returns:
        348-byte header, extension block, voxel data at a 16-byte aligned offset
    """
    array = check_voxel_array(array)
    if array.ndim == 1:
        array = array[:, np.newaxis]
    if array.ndim == 2:
        array = array[:, :, np.newaxis]
    volume = array.astype(np.float32)

    header = nib.Nifti1Header(endianness="<")
    header.set_data_dtype(np.float32)

    img = nib.Nifti1Image(volume, np.eye(4), header=header)
    img.set_sform(np.eye(4), code="scanner")
    img.set_qform(np.eye(4), code="scanner")
    img.header.extensions.append(
        nib.nifti1.Nifti1Extension(EXTENSION_CODE, payload.pack(archive_bytes))
    )

    encoded = img.to_bytes()
    logger.info(f"Encoded NIfTI {volume.shape} ({len(encoded)} bytes)")
    return encoded


def encode_archive(archive: Archive, crop: Optional[Sequence[int]] = None) -> bytes:
    """Encode the raw entry of an archive, embedding the (cropped) archive."""
    archive = crop_archive(archive, crop)
    raw_key = resolve_raw_key(archive.keys())
    if raw_key is None:
        raise MissingRequiredField("Archive contains no arrays")
    return encode(archive[raw_key], archive_to_bytes(archive))


def _load_image(data: bytes) -> nib.Nifti1Image:
    if len(data) < HEADER_SIZE:
        raise MalformedInput(f"NIfTI stream too short: {len(data)} bytes")

    sizeof_hdr_le = int.from_bytes(data[:4], "little")
    sizeof_hdr_be = int.from_bytes(data[:4], "big")
    if HEADER_SIZE not in (sizeof_hdr_le, sizeof_hdr_be):
        raise MalformedInput(f"sizeof_hdr must be {HEADER_SIZE}, got {sizeof_hdr_le}")

    try:
        return nib.Nifti1Image.from_bytes(data)
    except (HeaderDataError, ImageFileError, ValueError, EOFError) as e:
        raise MalformedInput(f"Unreadable NIfTI header: {e}") from e


def read_volume(data: bytes) -> np.ndarray:
    """Read the stored voxel array directly from the standard header/data layout."""
    img = _load_image(bytes(data))
    header = img.header

    datatype = int(header["datatype"])
    bitpix = int(header["bitpix"])
    if datatype not in SUPPORTED_DATATYPES or SUPPORTED_DATATYPES[datatype][1] != bitpix:
        raise UnsupportedDatatype(f"Unsupported NIfTI datatype {datatype} (bitpix {bitpix})")

    dtype = SUPPORTED_DATATYPES[datatype][0]
    try:
        volume = np.asanyarray(img.dataobj.get_unscaled())
    except (ValueError, EOFError) as e:
        raise MalformedInput(f"Voxel data does not match header dimensions: {e}") from e
    return volume.astype(dtype, copy=False)


def select_slice(volume: np.ndarray, slice_index: Optional[int] = None) -> np.ndarray:
    """Pick one 2D slice along the third axis (middle slice by default)."""
    if volume.ndim < 3:
        return volume
    while volume.ndim > 3:
        volume = volume[..., 0]
    z_count = volume.shape[2]

    if slice_index is None:
        slice_index = z_count // 2
    elif not 0 <= slice_index < z_count:
        raise SliceIndexOutOfRange(f"Slice index {slice_index} out of range [0, {z_count})")

    return np.ascontiguousarray(volume[:, :, slice_index])


def decode(data: bytes, slice_index: Optional[int] = None) -> Archive:
    """Decode a NIfTI byte stream into an archive.

    Args:
        data: NIfTI-1 bytes
        slice_index: z index for the fallback path; middle slice when omitted

    Returns:
        The embedded archive when present, otherwise ``{"image": 2D slice}``
    """
    data = bytes(data)
    archive_bytes = payload.scan_and_unpack(data)
    if archive_bytes is not None:
        try:
            archive = archive_from_bytes(archive_bytes)
        except MalformedInput as e:
            logger.warning(f"Embedded archive in NIfTI is unreadable, reading voxel data instead: {e}")
        else:
            logger.info(f"Recovered embedded archive from NIfTI: {sorted(archive)}")
            return archive

    volume = read_volume(data)
    logger.info(f"No embedded archive in NIfTI, read voxel data {volume.shape}")
    return {"image": select_slice(volume, slice_index)}

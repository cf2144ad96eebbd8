"""Single-slice DICOM encoder/decoder with an embedded round-trip payload.

Encoded files are explicit VR little endian, MONOCHROME2, 16-bit unsigned.
The full source archive rides along in private group 0x0011 so that
``decode(encode(archive))`` reproduces every array byte for byte.
"""

import datetime
import io
import logging
import uuid
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pydicom
from pydicom.dataset import FileDataset, FileMetaDataset
from pydicom.errors import InvalidDicomError
from pydicom.uid import ExplicitVRLittleEndian, SecondaryCaptureImageStorage, generate_uid

from .. import payload
from ..arrays import Archive, archive_from_bytes, archive_to_bytes, crop_archive, extract_2d, resolve_raw_key
from ..config import (
    IMPLEMENTATION_CLASS_UID,
    IMPLEMENTATION_VERSION_NAME,
    PRIVATE_CREATOR,
    PRIVATE_GROUP,
    PRIVATE_PAYLOAD_OFFSET,
)
from ..errors import MalformedInput, MissingRequiredField, MissingTag, TruncatedPixelData

logger = logging.getLogger(__name__)

PREAMBLE_SIZE = 128
DICM_MARKER = b"DICM"


def create_dicom_metadata(
    patient_name: str = "Anonymous",
    patient_id: Optional[str] = None,
    modality: str = "OT",
) -> Dict[str, Any]:
    """Create identifying metadata for one encoded slice.

    Args:
        patient_name: Patient name placeholder
        patient_id: Patient ID (generated if not provided)
        modality: Imaging modality

    Returns:
        Dictionary with DICOM metadata
    """
    now = datetime.datetime.now()

    return {
        "PatientName": patient_name,
        "PatientID": patient_id or str(uuid.uuid4())[:8].upper(),
        "StudyInstanceUID": generate_uid(),
        "SeriesInstanceUID": generate_uid(),
        "StudyDate": now.strftime("%Y%m%d"),
        "StudyTime": now.strftime("%H%M%S"),
        "Modality": modality,
    }


def to_pixel_bytes(array: np.ndarray) -> bytes:
    """Clamp a 2D array to the uint16 range and serialize it little endian."""
    clamped = np.clip(np.nan_to_num(array.astype(np.float64), nan=0.0), 0, 65535)
    return np.ascontiguousarray(clamped.astype("<u2")).tobytes()


def encode(
    array: np.ndarray,
    archive_bytes: bytes,
    metadata: Optional[Dict[str, Any]] = None,
) -> bytes:
    """Encode a 2D array as a DICOM byte stream.

    Args:
        array: Image reducible to 2D (see ``extract_2d``)
        archive_bytes: Serialized archive to embed as the round-trip payload
        metadata: Optional metadata from ``create_dicom_metadata``

    Returns:
        DICOM Part 10 bytes (128-byte preamble, ``DICM``, meta group, data set)
    """
    image = extract_2d(array)
    rows, cols = image.shape

    if metadata is None:
        metadata = create_dicom_metadata()

    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = SecondaryCaptureImageStorage
    file_meta.MediaStorageSOPInstanceUID = generate_uid()
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    file_meta.ImplementationClassUID = IMPLEMENTATION_CLASS_UID
    file_meta.ImplementationVersionName = IMPLEMENTATION_VERSION_NAME

    ds = FileDataset(
        filename_or_obj="",
        dataset={},
        file_meta=file_meta,
        preamble=b"\0" * PREAMBLE_SIZE,
    )

    ds.SOPClassUID = SecondaryCaptureImageStorage
    ds.SOPInstanceUID = file_meta.MediaStorageSOPInstanceUID
    ds.StudyDate = metadata["StudyDate"]
    ds.StudyTime = metadata["StudyTime"]
    ds.Modality = metadata["Modality"]
    ds.PatientName = metadata["PatientName"]
    ds.PatientID = metadata["PatientID"]
    ds.StudyInstanceUID = metadata["StudyInstanceUID"]
    ds.SeriesInstanceUID = metadata["SeriesInstanceUID"]

    # Image pixel module
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.Rows = rows
    ds.Columns = cols
    ds.BitsAllocated = 16
    ds.BitsStored = 16
    ds.HighBit = 15
    ds.PixelRepresentation = 0

    block = ds.private_block(PRIVATE_GROUP, PRIVATE_CREATOR, create=True)
    block.add_new(PRIVATE_PAYLOAD_OFFSET, "OB", payload.pack(archive_bytes))

    ds.add_new(0x7FE00010, "OW", to_pixel_bytes(image))

    buffer = io.BytesIO()
    ds.save_as(buffer, enforce_file_format=True)
    encoded = buffer.getvalue()
    logger.info(f"Encoded DICOM {rows}x{cols} ({len(encoded)} bytes)")
    return encoded


def encode_archive(archive: Archive, crop: Optional[Sequence[int]] = None) -> bytes:
    """Encode the raw entry of an archive, embedding the (cropped) archive."""
    archive = crop_archive(archive, crop)
    raw_key = resolve_raw_key(archive.keys())
    if raw_key is None:
        raise MissingRequiredField("Archive contains no arrays")
    return encode(archive[raw_key], archive_to_bytes(archive))


def read_pixels(data: bytes) -> np.ndarray:
    """Read Rows/Columns/PixelData from a DICOM stream without a payload.

    Returns:
        uint16 array of shape (rows, cols)
    """
    if len(data) < PREAMBLE_SIZE + len(DICM_MARKER) or data[PREAMBLE_SIZE:PREAMBLE_SIZE + 4] != DICM_MARKER:
        raise MalformedInput("Missing DICM marker at offset 128")

    try:
        ds = pydicom.dcmread(io.BytesIO(data), force=True)
        present = {name: name in ds for name in ("Rows", "Columns", "PixelData")}
        rows = int(ds.Rows) if present["Rows"] else None
        cols = int(ds.Columns) if present["Columns"] else None
        pixel_data = bytes(ds.PixelData) if present["PixelData"] else None
    except (InvalidDicomError, EOFError, ValueError, TypeError, KeyError, OSError) as e:
        raise MalformedInput(f"Unreadable DICOM stream: {e}") from e

    missing = [name for name, ok in present.items() if not ok]
    if missing:
        raise MissingTag(f"Missing required DICOM tags: {', '.join(missing)}")

    expected = rows * cols * 2
    if len(pixel_data) < expected:
        raise TruncatedPixelData(
            f"PixelData has {len(pixel_data)} bytes, expected {expected} for {rows}x{cols}"
        )

    return np.frombuffer(pixel_data[:expected], dtype="<u2").reshape(rows, cols).astype(np.uint16)


def decode(data: bytes) -> Archive:
    """Decode a DICOM byte stream into an archive.

    The embedded payload is preferred (lossless). Without a readable one, the standard
    pixel tags are read and returned as ``{"image": uint16 array}``.
    """
    data = bytes(data)
    archive_bytes = payload.scan_and_unpack(data)
    if archive_bytes is not None:
        try:
            archive = archive_from_bytes(archive_bytes)
        except MalformedInput as e:
            logger.warning(f"Embedded archive in DICOM is unreadable, reading PixelData instead: {e}")
        else:
            logger.info(f"Recovered embedded archive from DICOM: {sorted(archive)}")
            return archive

    logger.info("No embedded archive in DICOM, reading PixelData")
    return {"image": read_pixels(data)}

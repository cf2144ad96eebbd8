"""File-level conversions between ``.npz`` archives and DICOM/NIfTI files."""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from .arrays import load_archive, save_archive
from .codecs import dicom, nifti
from .config import ARCHIVE_EXTENSION, DICOM_EXTENSION, NIFTI_EXTENSION
from .errors import IOFailure, UnsupportedEncoding
from .slices import list_slice_files, natural_sort_key

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TARGETS = ("dicom", "nifti", "npz")


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise IOFailure(f"Failed to read {path}: {e}") from e


def _write_bytes(path: Path, data: bytes) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise IOFailure(f"Failed to write {path}: {e}") from e
    return path


def archive_file_to_dicom(src: PathLike, dst: PathLike, crop: Optional[Sequence[int]] = None) -> Path:
    """Encode one ``.npz`` slice archive as a ``.dcm`` file."""
    encoded = dicom.encode_archive(load_archive(src), crop)
    return _write_bytes(Path(dst), encoded)


def dicom_file_to_archive(src: PathLike, dst: PathLike) -> Path:
    """Decode one ``.dcm`` file into a ``.npz`` archive."""
    return save_archive(dst, dicom.decode(_read_bytes(Path(src))))


def archive_file_to_nifti(src: PathLike, dst: PathLike, crop: Optional[Sequence[int]] = None) -> Path:
    """Encode one ``.npz`` slice archive as a single-file ``.nii``."""
    encoded = nifti.encode_archive(load_archive(src), crop)
    return _write_bytes(Path(dst), encoded)


def nifti_file_to_archive(src: PathLike, dst: PathLike, slice_index: Optional[int] = None) -> Path:
    """Decode one ``.nii`` file into a ``.npz`` archive."""
    return save_archive(dst, nifti.decode(_read_bytes(Path(src)), slice_index))


def convert_directory(
    src_dir: PathLike,
    dst_dir: PathLike,
    target: str,
    crop: Optional[Sequence[int]] = None,
) -> List[Path]:
    """Convert every matching file in ``src_dir`` into ``dst_dir``.

    Args:
        src_dir: Input directory
        dst_dir: Output directory (created if missing)
        target: "dicom" or "nifti" (from ``.npz``), or "npz" (from ``.dcm``/``.nii``)
        crop: Optional (x_left, x_right, y_left, y_right) applied before encoding

    Returns:
        Written paths in natural input order
    """
    if target not in TARGETS:
        raise UnsupportedEncoding(f"Unknown conversion target '{target}', expected one of {TARGETS}")

    dst_dir = Path(dst_dir)
    jobs: Dict[str, Callable[[Path, Path], Path]]
    if target == "dicom":
        jobs = {ARCHIVE_EXTENSION: lambda s, d: archive_file_to_dicom(s, d.with_suffix(DICOM_EXTENSION), crop)}
    elif target == "nifti":
        jobs = {ARCHIVE_EXTENSION: lambda s, d: archive_file_to_nifti(s, d.with_suffix(NIFTI_EXTENSION), crop)}
    else:
        jobs = {
            DICOM_EXTENSION: lambda s, d: dicom_file_to_archive(s, d.with_suffix(ARCHIVE_EXTENSION)),
            NIFTI_EXTENSION: lambda s, d: nifti_file_to_archive(s, d.with_suffix(ARCHIVE_EXTENSION)),
        }

    sources = []
    for extension in jobs:
        sources.extend(list_slice_files(src_dir, extension))
    sources.sort(key=lambda p: natural_sort_key(p.name))
    if not sources:
        logger.warning(f"No input files for target '{target}' in {src_dir}")

    written = []
    for src in sources:
        out = jobs[src.suffix](src, dst_dir / src.name)
        written.append(out)
        logger.info(f"Converted {src.name} -> {out.name}")

    logger.info(f"Converted {len(written)} files from {src_dir} to {dst_dir} ({target})")
    return written

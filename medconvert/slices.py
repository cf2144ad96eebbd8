"""슬라이스 스택 로딩: 자연 정렬된 .npz 파일들을 3D 볼륨으로 조립."""

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from .arrays import extract_2d, load_archive, resolve_annotation_key, resolve_raw_key
from .config import ARCHIVE_EXTENSION, DEFAULT_OPTIONS, ReconstructionOptions
from .errors import EmptyResult, IOFailure, MissingRequiredField, ShapeMismatch

logger = logging.getLogger(__name__)


@dataclass
class Volume:
    """Raw intensity volume plus optional annotation, both (z, h, w) float32."""
    raw: np.ndarray
    annotation: Optional[np.ndarray] = None

    @property
    def z_count(self) -> int:
        return self.raw.shape[0]

    @property
    def height(self) -> int:
        return self.raw.shape[1]

    @property
    def width(self) -> int:
        return self.raw.shape[2]

    @property
    def has_annotation(self) -> bool:
        return self.annotation is not None


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


def _compare_natural(a: str, b: str) -> int:
    i = j = 0
    while i < len(a) and j < len(b):
        if _is_digit(a[i]) and _is_digit(b[j]):
            i0, j0 = i, j
            while i < len(a) and _is_digit(a[i]):
                i += 1
            while j < len(b) and _is_digit(b[j]):
                j += 1
            va, vb = int(a[i0:i]), int(b[j0:j])
            if va != vb:
                return -1 if va < vb else 1
        else:
            ca, cb = a[i].lower(), b[j].lower()
            if ca != cb:
                return -1 if ca < cb else 1
            i += 1
            j += 1
    if len(a) == len(b):
        return 0
    return -1 if len(a) < len(b) else 1


natural_sort_key = functools.cmp_to_key(_compare_natural)


def natural_sorted(names: List[str]) -> List[str]:
    return sorted(names, key=natural_sort_key)


def list_slice_files(input_dir: Union[str, Path], extension: str = ARCHIVE_EXTENSION) -> List[Path]:
    """List archive files in a directory in natural (numeric-aware) filename order."""
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise IOFailure(f"Input dir not found: {input_dir}")

    try:
        files = [p for p in input_dir.iterdir() if p.is_file() and p.suffix == extension]
    except OSError as e:
        raise IOFailure(f"Failed to list {input_dir}: {e}") from e

    return sorted(files, key=lambda p: natural_sort_key(p.name))


def load_slice_stack(
    input_dir: Union[str, Path],
    options: ReconstructionOptions = DEFAULT_OPTIONS,
) -> Volume:
    """Stack per-slice archives into a volume.

    Args:
        input_dir: Directory of ``.npz`` slices
        options: Key overrides for the raw/annotation entries

    Returns:
        Volume whose annotation is None when no slice supplied one
    """
    files = list_slice_files(input_dir)
    if not files:
        raise EmptyResult(f"No {ARCHIVE_EXTENSION} files found in: {input_dir}")

    raws: List[np.ndarray] = []
    anns: List[Optional[np.ndarray]] = []
    height = width = None

    for path in files:
        archive = load_archive(path)
        raw_key = resolve_raw_key(archive.keys(), options.raw_key)
        if raw_key is None:
            raise MissingRequiredField(f"No raw array found in {path}")
        ann_key = resolve_annotation_key(archive.keys(), raw_key, options.annotation_key)

        raw = extract_2d(archive[raw_key])
        if height is None:
            height, width = raw.shape
        elif raw.shape != (height, width):
            raise ShapeMismatch(f"Slice size mismatch in {path}: {raw.shape} vs {(height, width)}")

        ann = None
        if ann_key is not None:
            ann = extract_2d(archive[ann_key])
            if ann.shape != (height, width):
                raise ShapeMismatch(f"Annotation size mismatch in {path}: {ann.shape} vs {(height, width)}")

        raws.append(raw)
        anns.append(ann)

    raw_volume = np.stack(raws, axis=0)

    annotation = None
    if any(a is not None for a in anns):
        # 주석 없는 슬라이스는 0으로 채움
        annotation = np.stack(
            [a if a is not None else np.zeros((height, width), dtype=np.float32) for a in anns],
            axis=0,
        )

    logger.info(
        f"Loaded {len(files)} slices ({height}x{width}) from {input_dir}, "
        f"annotation: {'yes' if annotation is not None else 'no'}"
    )
    return Volume(raw=raw_volume, annotation=annotation)

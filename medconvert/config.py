"""변환/재구성 설정 및 상수."""

import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

# Array archive key preference (first match wins)
RAW_KEYS: List[str] = ["image", "img", "raw", "ct", "data", "slice", "input"]
ANNOTATION_KEYS: List[str] = ["label", "mask", "seg", "annotation", "gt"]

ARCHIVE_EXTENSION = ".npz"
DICOM_EXTENSION = ".dcm"
NIFTI_EXTENSION = ".nii"

ISO_LEVEL: float = 0.5

# annotation value > 1.0 -> yellow, threshold < value <= 1.0 -> red
CLASS_COLORS: Dict[str, Tuple[float, float, float, float]] = {
    "yellow": (1.0, 0.831, 0.0, 1.0),
    "red": (1.0, 0.231, 0.231, 1.0),
}

MATERIAL_ROUGHNESS: float = 0.9
MATERIAL_METALLIC: float = 0.0

# (x_left, x_right, y_left, y_right)
NO_CROP: Tuple[int, int, int, int] = (-1, -1, -1, -1)

IMPLEMENTATION_CLASS_UID = "1.2.826.0.1.3680043.8.498.2"
IMPLEMENTATION_VERSION_NAME = "MEDCONVERT_1.0"
PRIVATE_CREATOR = "MEDCONVERT"
PRIVATE_GROUP = 0x0011
PRIVATE_PAYLOAD_OFFSET = 0x10

LOG_LEVEL = os.environ.get("MEDCONVERT_LOG_LEVEL", "INFO")
DEFAULT_INPUT_SIZE = int(os.environ.get("MEDCONVERT_SEG_INPUT_SIZE", "256"))


@dataclass
class ReconstructionOptions:
    """Per-run options for slice stack to GLB reconstruction."""
    raw_key: Optional[str] = None  # explicit archive key for raw intensity
    annotation_key: Optional[str] = None  # explicit archive key for annotation
    annotation_threshold: float = 0.0  # lower bound of the red class
    use_raw_threshold: bool = True  # allow raw midpoint threshold when no annotation


DEFAULT_OPTIONS = ReconstructionOptions()

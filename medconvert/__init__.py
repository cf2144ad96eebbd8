"medconvert: NPZ <-> DICOM/NIfTI transcoding and slice stack to GLB reconstruction"

from typing import Any, Dict, Optional, Union
from pathlib import Path

from .config import ReconstructionOptions
from .errors import (
    MedConvertError,
    MalformedInput,
    TruncatedPixelData,
    SliceIndexOutOfRange,
    MissingRequiredField,
    MissingTag,
    TextureRequiredButMissing,
    ShapeMismatch,
    UnsupportedEncoding,
    UnsupportedDatatype,
    EmptyResult,
    EmptyMesh,
    IOFailure,
)
from .pipeline import ReconstructionPipeline, ReconstructionResult, convert_directory_to_glb
from .slices import Volume, load_slice_stack
from .transcode import (
    archive_file_to_dicom,
    archive_file_to_nifti,
    convert_directory,
    dicom_file_to_archive,
    nifti_file_to_archive,
)

__version__ = "0.1.0"

__all__ = [
    "run_reconstruction",
    "ReconstructionOptions",
    "ReconstructionPipeline",
    "ReconstructionResult",
    "convert_directory_to_glb",
    "Volume",
    "load_slice_stack",
    "archive_file_to_dicom",
    "archive_file_to_nifti",
    "dicom_file_to_archive",
    "nifti_file_to_archive",
    "convert_directory",
    "MedConvertError",
    "MalformedInput",
    "TruncatedPixelData",
    "SliceIndexOutOfRange",
    "MissingRequiredField",
    "MissingTag",
    "TextureRequiredButMissing",
    "ShapeMismatch",
    "UnsupportedEncoding",
    "UnsupportedDatatype",
    "EmptyResult",
    "EmptyMesh",
    "IOFailure",
]


def run_reconstruction(
    input_dir: Union[str, Path],
    output_path: Union[str, Path],
    options: Optional[ReconstructionOptions] = None,
) -> Dict[str, Any]:
    """슬라이스 디렉토리 → GLB 재구성 실행."""
    result = convert_directory_to_glb(input_dir, output_path, options)
    return result.to_dict()

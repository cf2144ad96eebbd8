"""Format codecs (DICOM, NIfTI) carrying an embedded round-trip archive."""

from . import dicom, nifti

__all__ = ["dicom", "nifti"]

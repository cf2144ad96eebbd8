"""Exception types raised by codecs, loaders and the reconstruction pipeline."""


class MedConvertError(Exception):
    """Base class for every error raised by medconvert."""


class MalformedInput(MedConvertError, ValueError):
    """Bad magic, length, VR or header size."""


class TruncatedPixelData(MalformedInput):
    """PixelData shorter than rows * cols * 2 bytes."""


class SliceIndexOutOfRange(MalformedInput, IndexError):
    """Requested z index outside the stored volume."""


class MissingRequiredField(MedConvertError, KeyError):
    """An expected tag, key or input is absent."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages
        return str(self.args[0]) if self.args else ""


class MissingTag(MissingRequiredField):
    """Rows, Columns or PixelData absent from a DICOM stream."""


class TextureRequiredButMissing(MissingRequiredField):
    """A textured primitive was requested without PNG bytes."""


class ShapeMismatch(MedConvertError, ValueError):
    """Inconsistent slice dimensions or label/raw size mismatch."""


class UnsupportedEncoding(MedConvertError, ValueError):
    """Dtype or VR outside the supported subset."""


class UnsupportedDatatype(UnsupportedEncoding):
    """NIfTI datatype other than float32, float64 or uint16."""


class EmptyResult(MedConvertError, ValueError):
    """Zero-triangle mesh or zero-file directory."""


class EmptyMesh(EmptyResult):
    """Nothing left to serialize after extraction."""


class IOFailure(MedConvertError, OSError):
    """Underlying read/write/permission failure."""

"""2D segmentation pre/post-processing around a caller-supplied inference runtime.

The model runtime itself is not part of this package: ``infer`` is any
callable mapping a (1, 3, S, S) float32 tensor to (1, C, S, S) logits.
"""

import logging
from typing import Callable, Optional, Tuple

import numpy as np
from scipy.special import expit
from skimage.transform import resize

from .arrays import Archive, extract_2d, resolve_raw_key
from .config import DEFAULT_INPUT_SIZE
from .errors import MalformedInput, MissingRequiredField, UnsupportedEncoding

logger = logging.getLogger(__name__)

InferFn = Callable[[np.ndarray], np.ndarray]

LOGIT_DTYPES = (np.dtype(np.float32), np.dtype(np.float16))
SIGMOID_THRESHOLD = 0.5
LABEL_KEY = "label"


def preprocess_slice(image: np.ndarray, input_size: int = DEFAULT_INPUT_SIZE) -> np.ndarray:
    """Scale to [0, 1], bilinear resize to ``input_size`` and replicate to 3 planes.

    Returns:
        (1, 3, input_size, input_size) float32 tensor
    """
    image = extract_2d(image)
    if image.size and float(image.max()) > 1.0:
        image = image / 255.0

    resized = resize(
        image,
        (input_size, input_size),
        order=1,
        preserve_range=True,
        anti_aliasing=False,
    ).astype(np.float32)
    return np.ascontiguousarray(np.broadcast_to(resized, (1, 3, input_size, input_size)))


def postprocess_logits(logits: np.ndarray, output_shape: Tuple[int, int]) -> np.ndarray:
    """Turn (1, C, H, W) logits into a uint8 label map of ``output_shape``.

    One channel is thresholded after a sigmoid, several channels use argmax.
    """
    logits = np.asarray(logits)
    if logits.ndim != 4 or logits.shape[0] != 1:
        raise MalformedInput(f"Expected (1, C, H, W) logits, got shape {logits.shape}")
    if logits.dtype not in LOGIT_DTYPES:
        raise UnsupportedEncoding(f"Unsupported logits dtype: {logits.dtype}")

    scores = logits[0].astype(np.float32)
    if scores.shape[0] == 1:
        labels = (expit(scores[0]) > SIGMOID_THRESHOLD).astype(np.uint8)
    else:
        labels = np.argmax(scores, axis=0).astype(np.uint8)

    resized = resize(
        labels,
        tuple(output_shape),
        order=0,
        preserve_range=True,
        anti_aliasing=False,
    )
    return resized.astype(np.uint8)


def segment_slice(
    image: np.ndarray,
    infer: InferFn,
    input_size: int = DEFAULT_INPUT_SIZE,
    output_shape: Optional[Tuple[int, int]] = None,
) -> np.ndarray:
    """Run ``infer`` on one slice and return a label map at the slice's size."""
    plane = extract_2d(image)
    if output_shape is None:
        output_shape = plane.shape
    tensor = preprocess_slice(plane, input_size)
    labels = postprocess_logits(infer(tensor), output_shape)
    logger.debug(f"Segmented slice {plane.shape}: {int(np.count_nonzero(labels))} labeled pixels")
    return labels


def annotate_archive(
    archive: Archive,
    infer: InferFn,
    input_size: int = DEFAULT_INPUT_SIZE,
    raw_key: Optional[str] = None,
) -> Archive:
    """Return a copy of ``archive`` with a ``label`` entry predicted from its raw slice."""
    key = resolve_raw_key(archive.keys(), raw_key)
    if key is None:
        raise MissingRequiredField("Archive contains no arrays")

    annotated = dict(archive)
    annotated[LABEL_KEY] = segment_slice(archive[key], infer, input_size)
    logger.info(f"Annotated archive from '{key}' -> '{LABEL_KEY}'")
    return annotated

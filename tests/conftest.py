from pathlib import Path

import numpy as np
import pytest

from medconvert.arrays import save_archive


@pytest.fixture
def write_slice():
    """Factory writing one ``.npz`` slice archive and returning its path."""

    def _write(directory: Path, name: str, **arrays: np.ndarray) -> Path:
        return save_archive(Path(directory) / name, arrays)

    return _write


@pytest.fixture
def sphere_volume() -> np.ndarray:
    """(16, 16, 16) binary ball of radius 5 centered in the volume."""
    z, y, x = np.mgrid[0:16, 0:16, 0:16]
    dist = np.sqrt((x - 7.5) ** 2 + (y - 7.5) ** 2 + (z - 7.5) ** 2)
    return (dist < 5.0).astype(np.float32)


@pytest.fixture
def sample_archive():
    image = (np.arange(32 * 32, dtype=np.uint16) % 4096).reshape(32, 32)
    label = np.zeros((32, 32), dtype=np.uint8)
    label[8:16, 8:16] = 1
    return {"image": image, "label": label}

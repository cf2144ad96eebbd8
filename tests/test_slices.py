import numpy as np
import pytest

from medconvert.config import ReconstructionOptions
from medconvert.errors import EmptyResult, IOFailure, MissingRequiredField, ShapeMismatch
from medconvert.slices import list_slice_files, load_slice_stack, natural_sorted


def test_natural_order():
    assert natural_sorted(["slice10", "slice2", "slice1"]) == ["slice1", "slice2", "slice10"]
    assert natural_sorted(["b", "A", "a1"]) == ["A", "a1", "b"]
    assert natural_sorted(["img", "img0"]) == ["img", "img0"]


def test_list_slice_files_ignores_other_extensions(tmp_path, write_slice):
    for name in ("slice2.npz", "slice10.npz", "slice1.npz"):
        write_slice(tmp_path, name, image=np.zeros((2, 2)))
    (tmp_path / "notes.txt").write_text("x")

    assert [p.name for p in list_slice_files(tmp_path)] == ["slice1.npz", "slice2.npz", "slice10.npz"]


def test_stack_follows_natural_order(tmp_path, write_slice):
    for index in (10, 2, 1):
        write_slice(tmp_path, f"slice{index}.npz", image=np.full((4, 6), index, dtype=np.int16))

    volume = load_slice_stack(tmp_path)
    assert volume.raw.shape == (3, 4, 6)
    assert volume.raw.dtype == np.float32
    assert [float(volume.raw[z, 0, 0]) for z in range(3)] == [1.0, 2.0, 10.0]
    assert not volume.has_annotation
    assert (volume.z_count, volume.height, volume.width) == (3, 4, 6)


def test_all_zero_annotation_still_counts(tmp_path, write_slice):
    write_slice(tmp_path, "s0.npz", image=np.ones((4, 4)), label=np.zeros((4, 4)))
    write_slice(tmp_path, "s1.npz", image=np.ones((4, 4)))

    volume = load_slice_stack(tmp_path)
    assert volume.has_annotation
    assert volume.annotation.shape == (2, 4, 4)
    assert not volume.annotation.any()


def test_explicit_keys(tmp_path, write_slice):
    write_slice(tmp_path, "s0.npz", a=np.full((3, 3), 5.0), b=np.full((3, 3), 2.0))

    volume = load_slice_stack(tmp_path, ReconstructionOptions(raw_key="b", annotation_key="a"))
    assert float(volume.raw[0, 0, 0]) == 2.0
    assert float(volume.annotation[0, 0, 0]) == 5.0


def test_slice_size_mismatch(tmp_path, write_slice):
    write_slice(tmp_path, "s0.npz", image=np.zeros((4, 4)))
    write_slice(tmp_path, "s1.npz", image=np.zeros((4, 5)))
    with pytest.raises(ShapeMismatch):
        load_slice_stack(tmp_path)


def test_annotation_size_mismatch(tmp_path, write_slice):
    write_slice(tmp_path, "s0.npz", image=np.zeros((4, 4)), label=np.zeros((3, 4)))
    with pytest.raises(ShapeMismatch):
        load_slice_stack(tmp_path)


def test_empty_archive(tmp_path, write_slice):
    write_slice(tmp_path, "s0.npz")
    with pytest.raises(MissingRequiredField):
        load_slice_stack(tmp_path)


def test_empty_directory(tmp_path):
    with pytest.raises(EmptyResult):
        load_slice_stack(tmp_path)


def test_missing_directory(tmp_path):
    with pytest.raises(IOFailure):
        load_slice_stack(tmp_path / "nope")

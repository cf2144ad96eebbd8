import numpy as np
import pytest

from medconvert.arrays import load_archive, save_archive
from medconvert.errors import UnsupportedEncoding
from medconvert.transcode import (
    archive_file_to_dicom,
    archive_file_to_nifti,
    convert_directory,
    dicom_file_to_archive,
    nifti_file_to_archive,
)


@pytest.fixture
def slice_dir(tmp_path, sample_archive):
    src = tmp_path / "npz"
    for index in (10, 2, 1):
        save_archive(src / f"slice{index}.npz", dict(sample_archive, index=np.array([index])))
    return src


def test_file_roundtrip_through_dicom(tmp_path, sample_archive):
    src = save_archive(tmp_path / "a.npz", sample_archive)
    dcm = archive_file_to_dicom(src, tmp_path / "a.dcm")
    back = load_archive(dicom_file_to_archive(dcm, tmp_path / "b.npz"))
    for key, value in sample_archive.items():
        np.testing.assert_array_equal(back[key], value)


def test_file_roundtrip_through_nifti(tmp_path, sample_archive):
    src = save_archive(tmp_path / "a.npz", sample_archive)
    nii = archive_file_to_nifti(src, tmp_path / "a.nii")
    back = load_archive(nifti_file_to_archive(nii, tmp_path / "b.npz"))
    for key, value in sample_archive.items():
        np.testing.assert_array_equal(back[key], value)


@pytest.mark.parametrize("target, suffix", [("dicom", ".dcm"), ("nifti", ".nii")])
def test_directory_conversion_keeps_stems_and_order(slice_dir, tmp_path, target, suffix):
    written = convert_directory(slice_dir, tmp_path / target, target)
    assert [p.name for p in written] == [f"slice{i}{suffix}" for i in (1, 2, 10)]

    restored = convert_directory(tmp_path / target, tmp_path / f"{target}_npz", "npz")
    assert [p.name for p in restored] == ["slice1.npz", "slice2.npz", "slice10.npz"]
    assert [int(load_archive(p)["index"][0]) for p in restored] == [1, 2, 10]


def test_directory_crop(slice_dir, sample_archive, tmp_path):
    convert_directory(slice_dir, tmp_path / "dcm", "dicom", crop=(10, 20, 5, 15))
    restored = convert_directory(tmp_path / "dcm", tmp_path / "back", "npz")
    archive = load_archive(restored[0])
    assert archive["image"].shape == (10, 10)
    np.testing.assert_array_equal(archive["image"], sample_archive["image"][5:15, 10:20])
    assert archive["label"].shape == (10, 10)


def test_directory_crop_out_of_bounds_is_ignored(slice_dir, tmp_path):
    convert_directory(slice_dir, tmp_path / "nii", "nifti", crop=(0, 40, 0, 10))
    restored = convert_directory(tmp_path / "nii", tmp_path / "back", "npz")
    assert load_archive(restored[0])["image"].shape == (32, 32)


def test_unknown_target(slice_dir, tmp_path):
    with pytest.raises(UnsupportedEncoding):
        convert_directory(slice_dir, tmp_path / "out", "png")


def test_no_inputs_returns_empty_list(tmp_path):
    (tmp_path / "empty").mkdir()
    assert convert_directory(tmp_path / "empty", tmp_path / "out", "dicom") == []

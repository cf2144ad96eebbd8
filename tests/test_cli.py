import numpy as np

from medconvert.cli import main


def test_glb_command(tmp_path, write_slice, capsys):
    for index in range(2):
        label = np.zeros((16, 16), dtype=np.float32)
        label[4:12, 4:12] = 2.0
        write_slice(tmp_path / "in", f"s{index}.npz", image=np.zeros((16, 16)), label=label)

    assert main(["glb", str(tmp_path / "in"), str(tmp_path / "model.glb")]) == 0
    assert (tmp_path / "model.glb").exists()
    assert "yellow" in capsys.readouterr().out


def test_convert_command_with_crop(tmp_path, sample_archive, write_slice):
    write_slice(tmp_path / "in", "s0.npz", **sample_archive)

    assert main(["convert", str(tmp_path / "in"), str(tmp_path / "dcm"), "--to", "dicom", "--crop", "0", "8", "0", "4"]) == 0
    assert main(["convert", str(tmp_path / "dcm"), str(tmp_path / "back"), "--to", "npz"]) == 0
    assert np.load(tmp_path / "back" / "s0.npz")["image"].shape == (4, 8)


def test_errors_exit_with_status_1(tmp_path):
    assert main(["glb", str(tmp_path / "missing"), str(tmp_path / "model.glb")]) == 1
    assert not (tmp_path / "model.glb").exists()

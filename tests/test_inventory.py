from pathlib import Path

import pytest
from conftest import STUDY_A, STUDY_B, make_dicom_bytes, write_dicom

from milvue_batch.errors import AttributeReadError
from milvue_batch.io import read_instance_keys
from milvue_batch.pipelines.inventory import (
    MILVUE_UID_ROOT,
    build_inventory,
    discover_files,
    is_milvue_output,
)


def test_read_instance_keys(tmp_path: Path) -> None:
    path = write_dicom(tmp_path / "x.dcm", STUDY_A, "1.2.3.4.100.7")
    assert read_instance_keys(path) == (STUDY_A, "1.2.3.4.100.7")


def test_read_instance_keys_missing_study(tmp_path: Path) -> None:
    path = write_dicom(tmp_path / "x.dcm", None, "1.2.3.4.100.7")
    try:
        read_instance_keys(path)
    except AttributeReadError as exc:
        assert "StudyInstanceUID" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("expected AttributeReadError")


@pytest.mark.parametrize("keep", [0, 10, 100, 140, 200])
def test_read_instance_keys_truncated(tmp_path: Path, keep: int) -> None:
    path = tmp_path / "cut.dcm"
    path.write_bytes(make_dicom_bytes(STUDY_A, "1.2.3.4.100.7")[:keep])
    with pytest.raises(AttributeReadError):
        read_instance_keys(path)


def test_discover_files_recursive(dicom_tree: Path) -> None:
    flat = discover_files([dicom_tree])
    deep = discover_files([dicom_tree], recursive=True)
    assert [p.name for p in flat] == ["a1.dcm", "a2.dcm"]
    assert sorted(p.name for p in deep) == ["a1.dcm", "a2.dcm", "b1.dcm"]


def test_discover_files_deduplicates(dicom_tree: Path) -> None:
    files = discover_files([dicom_tree / "a1.dcm", dicom_tree, dicom_tree / "a1.dcm"])
    assert [p.name for p in files] == ["a1.dcm", "a2.dcm"]


def test_build_inventory_groups_by_study(dicom_tree: Path) -> None:
    inv = build_inventory(discover_files([dicom_tree], recursive=True))
    assert set(inv) == {STUDY_A, STUDY_B}
    assert inv[STUDY_A].instance_keys == ["1.2.3.4.100.1", "1.2.3.4.100.2"]
    assert len(inv[STUDY_B]) == 1


def test_every_file_in_exactly_one_study(dicom_tree: Path) -> None:
    files = discover_files([dicom_tree], recursive=True)
    inv = build_inventory(files)
    grouped = [f.path for s in inv.values() for f in s.files]
    assert sorted(grouped) == sorted(files)
    for study in inv.values():
        assert all(f.study_key == study.key for f in study.files)


def test_missing_attribute_is_skipped(tmp_path: Path, caplog) -> None:
    good = write_dicom(tmp_path / "good.dcm", STUDY_A, "1.2.3.4.100.1")
    bad = write_dicom(tmp_path / "bad.dcm", STUDY_A, None)
    junk = tmp_path / "notes.txt"
    junk.write_text("not dicom")

    inv = build_inventory([good, bad, junk])

    assert list(inv) == [STUDY_A]
    assert inv[STUDY_A].instance_keys == ["1.2.3.4.100.1"]
    assert "bad.dcm" in caplog.text
    assert "notes.txt" in caplog.text


def test_milvue_outputs_are_skipped(tmp_path: Path) -> None:
    ours = f"{MILVUE_UID_ROOT}.1.2.3"
    assert is_milvue_output(ours)
    assert not is_milvue_output("1.2.3.4")

    write_dicom(tmp_path / "in.dcm", STUDY_A, "1.2.3.4.100.1")
    write_dicom(tmp_path / "out.dcm", STUDY_A, ours)
    inv = build_inventory(discover_files([tmp_path]))
    assert inv[STUDY_A].instance_keys == ["1.2.3.4.100.1"]


def test_duplicate_instance_first_wins(tmp_path: Path, caplog) -> None:
    first = write_dicom(tmp_path / "a.dcm", STUDY_A, "1.2.3.4.100.1")
    second = write_dicom(tmp_path / "b.dcm", STUDY_A, "1.2.3.4.100.1")

    inv = build_inventory([first, second])

    assert [f.path for f in inv[STUDY_A].files] == [first]
    assert "already provided" in caplog.text


def test_empty_inventory_is_none(tmp_path: Path) -> None:
    (tmp_path / "readme.txt").write_text("nothing here")
    assert build_inventory(discover_files([tmp_path])) is None
    assert build_inventory([]) is None


def test_custom_reader() -> None:
    def reader(path):
        return ("S", path.stem)

    inv = build_inventory([Path("i1"), Path("i2")], reader=reader)
    assert inv["S"].instance_keys == ["i1", "i2"]


def test_truncated_files_are_skipped(tmp_path: Path, caplog) -> None:
    good = write_dicom(tmp_path / "good.dcm", STUDY_A, "1.2.3.4.100.1")
    data = make_dicom_bytes(STUDY_B, "1.2.3.4.200.1")
    cut = []
    for keep in (10, 100, 140, 200):
        path = tmp_path / f"cut{keep}.dcm"
        path.write_bytes(data[:keep])
        cut.append(path)

    inv = build_inventory([good, *cut])

    assert list(inv) == [STUDY_A]
    assert inv[STUDY_A].instance_keys == ["1.2.3.4.100.1"]
    for path in cut:
        assert path.name in caplog.text

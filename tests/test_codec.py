import io
from pathlib import Path

import pytest
from conftest import STUDY_A, make_dicom_bytes, multipart_body, write_dicom
from pydicom import config

from milvue_batch.errors import BoundaryError, PartDecodeError, TruncatedPartError
from milvue_batch.models import SourceFile, Study
from milvue_batch.pipelines.codec import (
    decode_parts,
    decode_results,
    encode_parts,
    extract_boundary,
    is_plain_uid,
    study_parts,
)


def _join(bundle) -> bytes:
    return b"".join(bundle.body)


def test_encode_then_decode_preserves_parts() -> None:
    bundle = encode_parts([("a.dcm", b"alpha"), ("b.dcm", b"\x00\x01beta\r\n")])
    parts = decode_parts(bundle.content_type, _join(bundle))

    assert [p.name for p in parts] == ["a.dcm", "b.dcm"]
    assert [p.data for p in parts] == [b"alpha", b"\x00\x01beta\r\n"]
    assert all(p.content_type == "application/dicom" for p in parts)


def test_encode_streams_in_chunks(tmp_path: Path) -> None:
    src = tmp_path / "big.bin"
    src.write_bytes(b"x" * 10_000)

    bundle = encode_parts([("big.dcm", src)], boundary="fixed-boundary", chunk_size=4096)
    chunks = list(bundle.body)

    assert bundle.content_type == "multipart/related; boundary=fixed-boundary"
    assert max(len(c) for c in chunks) <= 4096
    assert sum(len(c) for c in chunks) > 10_000


def test_encode_accepts_open_handles() -> None:
    fh = io.BytesIO(b"payload")
    bundle = encode_parts([("h.dcm", fh)], boundary="b1")
    assert b"payload" in _join(bundle)
    assert not fh.closed


def test_encode_rejects_duplicate_names() -> None:
    with pytest.raises(ValueError):
        encode_parts([("a.dcm", b"1"), ("a.dcm", b"2")])


def test_encode_rejects_bad_boundary() -> None:
    with pytest.raises(ValueError):
        encode_parts([("a.dcm", b"1")], boundary="has\nnewline")


def test_study_parts_are_named_by_instance(tmp_path: Path) -> None:
    path = write_dicom(tmp_path / "x.dcm", STUDY_A, "1.2.3.4.100.9")
    study = Study(
        key=STUDY_A,
        files=(SourceFile(path=path, study_key=STUDY_A, instance_key="1.2.3.4.100.9"),),
    )
    assert study_parts(study) == [("1.2.3.4.100.9.dcm", path)]


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, None),
        ("", None),
        ("application/json", None),
        ("multipart/related; boundary=abc123", "abc123"),
        ('multipart/related; type="application/dicom"; boundary="q b"', "q b"),
        ('multipart/related; type="application/x-boundary-less"', None),
    ],
)
def test_extract_boundary(header, expected) -> None:
    assert extract_boundary(header) == expected


def test_no_boundary_means_no_output() -> None:
    assert decode_parts("application/json", b'{"detail": "nothing"}') == []
    assert decode_results(None, b"") == []


def test_boundary_in_other_parameter_value_is_not_a_boundary() -> None:
    header = 'multipart/related; type="application/x-boundary-less"'
    assert decode_parts(header, b"some body") == []


def test_malformed_boundary_with_body_is_error() -> None:
    with pytest.raises(BoundaryError):
        decode_parts("multipart/related; boundary=", b"--x\r\n\r\ndata\r\n--x--")


def test_malformed_boundary_without_body_is_empty() -> None:
    assert decode_parts("multipart/related; boundary=", b"") == []


def test_body_without_delimiter_is_error() -> None:
    with pytest.raises(BoundaryError):
        decode_parts("multipart/related; boundary=zzz", b"plain text body")


def test_truncated_body_is_error() -> None:
    body = multipart_body("bnd", [("a.dcm", b"one"), ("b.dcm", b"two")], closing=False)
    with pytest.raises(TruncatedPartError):
        decode_parts("multipart/related; boundary=bnd", body[:-12])


def test_decode_results_two_dicom_parts() -> None:
    a = make_dicom_bytes(STUDY_A, "1.2.3.4.100.11")
    b = make_dicom_bytes(STUDY_A, "1.2.3.4.100.12")
    body = multipart_body("res", [("a.dcm", a), ("b.dcm", b)])

    results = decode_results("multipart/related; boundary=res", body)

    assert [r.instance_key for r in results] == ["1.2.3.4.100.11", "1.2.3.4.100.12"]
    assert [r.filename for r in results] == ["1.2.3.4.100.11.dcm", "1.2.3.4.100.12.dcm"]
    assert results[0].data == a


def test_bad_part_aborts_whole_decode() -> None:
    good = make_dicom_bytes(STUDY_A, "1.2.3.4.100.11")
    body = multipart_body("res", [("a.dcm", good), ("b.dcm", b"definitely not dicom")])

    with pytest.raises(PartDecodeError) as exc:
        decode_results("multipart/related; boundary=res", body)
    assert "Part 2" in str(exc.value)


@pytest.mark.parametrize("sop_uid", ["../../escaped", "1.2.3/../4", "1.2.3.\n4"])
def test_result_with_non_uid_instance_key_is_rejected(monkeypatch, sop_uid) -> None:
    monkeypatch.setattr(config.settings, "reading_validation_mode", config.IGNORE)
    body = multipart_body("res", [("evil.dcm", make_dicom_bytes(STUDY_A, sop_uid))])

    with pytest.raises(PartDecodeError) as exc:
        decode_results("multipart/related; boundary=res", body)
    assert "invalid SOPInstanceUID" in str(exc.value)


def test_is_plain_uid() -> None:
    assert is_plain_uid("1.2.840.10008.5.1.4.1.1.7")
    assert not is_plain_uid("")
    assert not is_plain_uid("1..2")
    assert not is_plain_uid("1.2\n")
    assert not is_plain_uid("1." + "2" * 64)

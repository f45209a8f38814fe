"""Shared fixtures: synthetic DICOM files and a stub Milvue transport."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

import pydicom
import pytest
import structlog
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import ExplicitVRLittleEndian, SecondaryCaptureImageStorage, generate_uid

from milvue_batch.config import RunConfig
from milvue_batch.params import InferenceCommand, ParameterSet

STUDY_A = "1.2.3.4.100"
STUDY_B = "1.2.3.4.200"


def make_dicom_bytes(
    study_uid: Optional[str] = STUDY_A,
    sop_uid: Optional[str] = None,
) -> bytes:
    """Return a minimal Part-10 DICOM file; ``None`` omits that attribute."""
    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = SecondaryCaptureImageStorage
    meta.MediaStorageSOPInstanceUID = sop_uid or generate_uid()
    meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = Dataset()
    ds.file_meta = meta
    ds.SOPClassUID = SecondaryCaptureImageStorage
    if sop_uid is not None:
        ds.SOPInstanceUID = sop_uid
    if study_uid is not None:
        ds.StudyInstanceUID = study_uid
    ds.PatientName = "Test^Patient"
    ds.Modality = "CR"

    buf = io.BytesIO()
    pydicom.dcmwrite(buf, ds, enforce_file_format=True)
    return buf.getvalue()


def write_dicom(path: Path, study_uid: Optional[str], sop_uid: Optional[str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_dicom_bytes(study_uid, sop_uid))
    return path


def multipart_body(boundary: str, payloads, *, closing: bool = True) -> bytes:
    """Assemble a ``multipart/related`` body the way the service sends it."""
    out = b""
    for name, data in payloads:
        out += (
            f"--{boundary}\r\n"
            f'Content-Disposition: attachment; name="{name}"\r\n'
            "Content-Type: application/dicom\r\n\r\n"
        ).encode() + data + b"\r\n"
    if closing:
        out += f"--{boundary}--\r\n".encode()
    return out


class DummyResp:
    """Stand-in for :class:`requests.Response`."""

    def __init__(self, status_code=200, json_data=None, content=b"", headers=None):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.headers = headers or {}

    @property
    def text(self):
        return self.content.decode("utf-8", "replace")

    def json(self):
        if self._json is None:
            raise ValueError("no JSON body")
        return self._json


def status_json(study_uid: str, status: str) -> dict:
    return {
        "StudyInstanceUID": study_uid,
        "status": status,
        "version": "3.1.0",
        "message": f"study is {status}",
    }


@pytest.fixture
def dicom_tree(tmp_path: Path) -> Path:
    """Two studies: A with two instances, B with one."""
    root = tmp_path / "input"
    write_dicom(root / "a1.dcm", STUDY_A, "1.2.3.4.100.1")
    write_dicom(root / "a2.dcm", STUDY_A, "1.2.3.4.100.2")
    write_dicom(root / "nested" / "b1.dcm", STUDY_B, "1.2.3.4.200.1")
    return root


@pytest.fixture
def run_config(tmp_path: Path) -> RunConfig:
    return RunConfig(
        api_key="secret-key",
        base_url="https://milvue.test/",
        parameter_sets=[
            ParameterSet(inference_command=InferenceCommand.SMART_URGENCES),
            ParameterSet(inference_command=InferenceCommand.SMART_XPERT),
        ],
        output_dir=tmp_path / "out",
        poll_interval=0,
        max_concurrent_studies=2,
        max_concurrent_downloads=2,
    )


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "MILVUE_API_KEY",
        "MILVUE_API_URL",
        "MILVUE_API_URL_DEV",
        "MILVUE_API_URL_STAGING",
        "MILVUE_API_URL_PROD",
        "MILVUE_TIMEOUT",
        "MILVUE_BATCH_LOG_DIR",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)

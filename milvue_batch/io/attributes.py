"""
Minimal DICOM header access.

Only the two identifiers needed to build the inventory are read.  The file is
parsed with ``stop_before_pixels=True`` and ``specific_tags`` so the bulk
pixel payload is never loaded, which keeps inventory construction cheap even
for large CR/DX images.
"""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

import pydicom

from ..errors import AttributeReadError

STUDY_KEY_TAG = "StudyInstanceUID"
INSTANCE_KEY_TAG = "SOPInstanceUID"


def _text(ds: pydicom.Dataset, keyword: str, path: Path) -> str:
    """Return *keyword* from *ds* as a stripped string or raise."""
    value = ds.get(keyword)
    if value is None:
        raise AttributeReadError(f"{path}: missing {keyword}")
    text = str(value).strip()
    if not text:
        raise AttributeReadError(f"{path}: empty {keyword}")
    return text


def read_instance_keys(path: str | Path) -> Tuple[str, str]:
    """Return ``(StudyInstanceUID, SOPInstanceUID)`` for *path*.

    Args:
        path: DICOM file on disk.

    Returns:
        Tuple of study key and instance key.

    Raises:
        AttributeReadError: When *path* is not a readable DICOM file or one of
            the identifiers is missing or empty.
    """
    path = Path(path)
    try:
        ds = pydicom.dcmread(
            path,
            stop_before_pixels=True,
            specific_tags=[STUDY_KEY_TAG, INSTANCE_KEY_TAG],
        )
    except Exception as exc:  # noqa: BLE001 – any parser failure is an unreadable file
        raise AttributeReadError(f"{path} is not a valid DICOM file: {exc}") from exc

    return _text(ds, STUDY_KEY_TAG, path), _text(ds, INSTANCE_KEY_TAG, path)

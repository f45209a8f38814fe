"""
Domain-level data models shared across the I/O, pipeline and CLI layers.

* **Inventory types** – :class:`SourceFile`, :class:`Study` and the
  :data:`Inventory` mapping produced once per run.
* **Wire types** – :class:`StatusResponse` (JSON) plus the binary carriers
  :class:`Part` and :class:`ResultFile` produced by the multipart codec.
* **Run bookkeeping** – :class:`Event`, :class:`StudyState`,
  :class:`StudyOutcome`, :class:`EventSummary` and :class:`BatchReport`.

Pydantic models are frozen so they can be shared between worker threads
without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .errors import ProtocolError

# --------------------------------------------------------------------------- #
# 1 – Inventory
# --------------------------------------------------------------------------- #


class SourceFile(BaseModel, frozen=True):
    """One input DICOM file and the two identifiers read from its header."""

    path: Path
    study_key: str
    instance_key: str


class Study(BaseModel, frozen=True):
    """Files sharing one ``StudyInstanceUID``, ordered and unique by instance key."""

    key: str
    files: Tuple[SourceFile, ...] = ()

    @property
    def instance_keys(self) -> List[str]:
        return [f.instance_key for f in self.files]

    def __len__(self) -> int:
        return len(self.files)


Inventory = Dict[str, Study]

# --------------------------------------------------------------------------- #
# 2 – Wire types
# --------------------------------------------------------------------------- #

TERMINAL_STATUS = "done"


class StatusResponse(BaseModel, frozen=True):
    """Body of ``GET /v3/studies/{uid}/status``."""

    model_config = ConfigDict(populate_by_name=True)

    study_instance_uid: str = Field(alias="StudyInstanceUID")
    status: str
    version: str
    message: str

    @property
    def is_done(self) -> bool:
        return self.status == TERMINAL_STATUS

    @classmethod
    def from_payload(cls, payload: object) -> "StatusResponse":
        """Validate a decoded JSON payload.

        Raises:
            ProtocolError: When *payload* is not an object or lacks a field.
        """
        if not isinstance(payload, Mapping):
            raise ProtocolError(f"Status response is not a JSON object: {payload!r}")
        try:
            return cls.model_validate(payload)
        except Exception as exc:  # pydantic.ValidationError
            raise ProtocolError(f"Malformed status response – {exc}") from exc


@dataclass(frozen=True, slots=True)
class Part:
    """One raw part of a multipart body.

    Attributes:
        name: ``name`` parameter of the ``Content-Disposition`` header, or
            ``None`` when the part carries no disposition.
        headers: Part headers with lower-cased keys.
        data: Raw payload bytes.
    """

    name: Optional[str]
    headers: Dict[str, str]
    data: bytes

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")


@dataclass(frozen=True, slots=True)
class ResultFile:
    """A decoded result part: the raw bytes plus the parsed DICOM dataset."""

    instance_key: str
    data: bytes
    dataset: object = field(repr=False, compare=False)

    @property
    def filename(self) -> str:
        return f"{self.instance_key}.dcm"


# --------------------------------------------------------------------------- #
# 3 – Run bookkeeping
# --------------------------------------------------------------------------- #


class EventKind(str, Enum):
    UPLOADED = "uploaded"
    PREDICTED = "predicted"
    DOWNLOADED = "downloaded"


class Event(BaseModel, frozen=True):
    """Lifecycle notification emitted by a worker and consumed by the bus."""

    kind: EventKind
    study_key: str
    detail: Optional[str] = None


class StudyState(str, Enum):
    """Processing state of one study, in lifecycle order."""

    READY = "ready"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    WAITING_TO_POLL = "waiting_to_poll"
    POLLING = "polling"
    PREDICTED = "predicted"
    DOWNLOADING = "downloading"
    DONE = "done"
    FAILED = "failed"


class StudyOutcome(BaseModel, frozen=True):
    """Final record for one study of a run.

    Attributes:
        study_key: ``StudyInstanceUID`` of the study.
        state: Last state reached; ``failed`` or ``done`` for finished runs.
        error: Error text when *state* is ``failed``.
        written: Result files written for the study.
        download_errors: One message per parameter set whose download failed.
    """

    study_key: str
    state: StudyState
    error: Optional[str] = None
    written: Tuple[Path, ...] = ()
    download_errors: Tuple[str, ...] = ()

    @property
    def failed(self) -> bool:
        return self.state is StudyState.FAILED


class EventSummary(BaseModel, frozen=True):
    """Counters accumulated by the event bus."""

    uploaded: int = 0
    predicted: int = 0
    downloaded: int = 0


class BatchReport(BaseModel, frozen=True):
    """Return value of :meth:`Orchestrator.run`."""

    outcomes: Tuple[StudyOutcome, ...]
    events: EventSummary

    @property
    def failed(self) -> List[StudyOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def written(self) -> List[Path]:
        return [p for o in self.outcomes for p in o.written]

"""
Exception hierarchy shared by every *milvue_batch* layer.

All errors derive from :class:`MilvueError` so the CLI can catch the whole
family in one place.  The classes map onto the failure scopes of a run:

* *file level* – :class:`AttributeReadError` (skipped with a warning);
* *request level* – :class:`TransportError`, :class:`StatusResponseError`,
  :class:`ProtocolError` (abort the owning study only);
* *decode level* – :class:`CodecError` and subclasses (abort one download);
* *run level* – :class:`ConfigurationError` (raised before any worker runs).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    import requests


class MilvueError(RuntimeError):
    """Base class for every error raised by *milvue_batch*."""


class ConfigurationError(MilvueError):
    """Raised when the run cannot start (missing key, URL or inference command)."""


class AttributeReadError(MilvueError):
    """Raised when a DICOM file cannot be parsed or lacks a required attribute."""


class TransportError(MilvueError):
    """Raised when an HTTP request fails before a response is received."""


class StatusResponseError(MilvueError):
    """Raised when the Milvue API answers with a non-2xx status.

    The original :class:`requests.Response` is kept on :attr:`response` so
    callers can inspect headers or the body for diagnostics.
    """

    def __init__(self, action: str, response: "requests.Response") -> None:
        self.action = action
        self.response = response
        super().__init__(
            f"{action} failed with HTTP {response.status_code}: "
            f"{_short_body(response)}"
        )


class ProtocolError(MilvueError):
    """Raised when a response is missing a field the protocol requires."""


class CodecError(MilvueError):
    """Base class for multipart encode/decode failures."""


class BoundaryError(CodecError):
    """Raised when the boundary declaration is malformed but a body is present."""


class TruncatedPartError(CodecError):
    """Raised when a multipart body ends before its closing delimiter."""


class PartDecodeError(CodecError):
    """Raised when a multipart part cannot be parsed as a DICOM file."""


class PollTimeoutError(MilvueError):
    """Raised when a study does not reach ``done`` within the allowed budget."""


class StudyCancelled(MilvueError):
    """Raised inside a worker once its cancellation event has been set."""


def _short_body(response: "requests.Response", limit: int = 200) -> str:
    """Return at most *limit* characters of the response body for messages."""
    try:
        text = response.text or ""
    except Exception:  # noqa: BLE001 – diagnostics only
        return "<unreadable body>"
    return text if len(text) <= limit else text[:limit] + "…"

"""
Multipart encode/decode for the Milvue wire payloads.

Upload direction
----------------
:func:`encode_parts` turns ``(name, source)`` pairs into an
:class:`EncodedBundle` whose :attr:`~EncodedBundle.body` is a *generator* of
byte chunks.  ``requests`` sends such a body with chunked transfer encoding,
so each file is read from disk in :data:`CHUNK_SIZE` blocks while the request
is being written and no study is ever held in memory as a whole.  Files are
opened lazily and closed as soon as their part has been emitted.

Part headers are rendered by :class:`urllib3.fields.RequestField`, the same
helper ``requests`` relies on for its own form encoding.

Download direction
------------------
:func:`decode_parts` splits a response body at the boundary declared in its
``Content-Type`` header.  A header without a boundary means the service had
nothing to return for that request and yields an empty list.
:func:`decode_results` additionally parses every part as DICOM; one bad part
aborts the whole decode because a partial result set is likely invalid.
"""

from __future__ import annotations

import io
import re
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from email.message import Message
from email.parser import BytesParser
from pathlib import Path
from typing import IO, Iterable, Iterator, List, Optional, Tuple, Union

import pydicom
from urllib3.fields import RequestField
from urllib3.filepost import choose_boundary

from ..errors import BoundaryError, PartDecodeError, TruncatedPartError
from ..models import Part, ResultFile, Study

CHUNK_SIZE = 64 * 1024
DICOM_CONTENT_TYPE = "application/dicom"
BUNDLE_CONTENT_TYPE = "multipart/related"

# RFC 2046: 1–70 characters, no trailing space.
_BOUNDARY_RE = re.compile(r"^[0-9A-Za-z'()+_,\-./:=? ]{0,69}[0-9A-Za-z'()+_,\-./:=?]$")
_CRLF = b"\r\n"
# DICOM UID: dot-separated numeric components, at most 64 characters.
_UID_RE = re.compile(r"[0-9]+(\.[0-9]+)*")

PartSource = Union[str, Path, bytes, IO[bytes]]


def is_plain_uid(value: str) -> bool:
    """Return ``True`` when *value* is a syntactically valid DICOM UID."""
    return len(value) <= 64 and bool(_UID_RE.fullmatch(value))


# ─────────────────────────────────────────────────────────────────────────────
# Encode
# ─────────────────────────────────────────────────────────────────────────────
@dataclass
class EncodedBundle:
    """Outbound multipart payload.

    Attributes:
        boundary: Boundary token separating the parts.
        content_type: Value for the request ``Content-Type`` header.
        body: Lazily evaluated byte chunks; consume it exactly once.
        part_names: Names of the parts in emission order.
    """

    boundary: str
    content_type: str
    body: Iterator[bytes]
    part_names: Tuple[str, ...]


@contextmanager
def _open_source(source: PartSource):
    """Yield a readable binary handle for *source*."""
    if isinstance(source, (bytes, bytearray)):
        yield io.BytesIO(source)
    elif isinstance(source, (str, Path)):
        with open(source, "rb") as fh:
            yield fh
    else:
        # Caller-owned handle; leave it open.
        with nullcontext(source) as fh:
            yield fh


def _part_header(name: str, content_type: str) -> bytes:
    field = RequestField(name=name, data=b"")
    field.make_multipart(content_type=content_type)
    return field.render_headers().encode("latin-1")


def _iter_body(
    parts: List[Tuple[str, PartSource]],
    boundary: str,
    content_type: str,
    chunk_size: int,
) -> Iterator[bytes]:
    delimiter = b"--" + boundary.encode("ascii")
    for name, source in parts:
        yield delimiter + _CRLF + _part_header(name, content_type)
        with _open_source(source) as fh:
            while True:
                chunk = fh.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        yield _CRLF
    yield delimiter + b"--" + _CRLF


def encode_parts(
    parts: Iterable[Tuple[str, PartSource]],
    *,
    boundary: Optional[str] = None,
    content_type: str = DICOM_CONTENT_TYPE,
    chunk_size: int = CHUNK_SIZE,
) -> EncodedBundle:
    """Build a streamed multipart bundle.

    Args:
        parts: ``(name, source)`` pairs; *source* is a path, raw bytes or an
            open binary handle.  Names must be unique.
        boundary: Fixed boundary (tests); a random one is chosen otherwise.
        content_type: ``Content-Type`` of every part.
        chunk_size: Read size used when streaming file content.

    Returns:
        :class:`EncodedBundle` ready to be passed as ``data=`` to ``requests``.

    Raises:
        ValueError: On duplicate part names or an invalid *boundary*.
    """
    items = list(parts)
    names = tuple(name for name, _ in items)
    if len(set(names)) != len(names):
        raise ValueError("Multipart part names must be unique")

    boundary = boundary or choose_boundary()
    if not _BOUNDARY_RE.match(boundary):
        raise ValueError(f"Invalid multipart boundary: {boundary!r}")

    return EncodedBundle(
        boundary=boundary,
        content_type=f"{BUNDLE_CONTENT_TYPE}; boundary={boundary}",
        body=_iter_body(items, boundary, content_type, chunk_size),
        part_names=names,
    )


def study_parts(study: Study) -> List[Tuple[str, Path]]:
    """Return the ``(<SOPInstanceUID>.dcm, path)`` pairs uploaded for *study*."""
    return [(f"{f.instance_key}.dcm", f.path) for f in study.files]


# ─────────────────────────────────────────────────────────────────────────────
# Decode
# ─────────────────────────────────────────────────────────────────────────────
def extract_boundary(content_type: Optional[str]) -> Optional[str]:
    """Return the boundary declared in *content_type*.

    Returns:
        The boundary, or ``None`` when the header declares none.

    Raises:
        BoundaryError: When a boundary parameter is present but empty or
            syntactically invalid.
    """
    if not content_type:
        return None

    msg = Message()
    msg["Content-Type"] = content_type
    value = msg.get_param("boundary")
    if value is None:
        names = [name.strip().lower() for name, _ in (msg.get_params() or [])[1:]]
        if "boundary" in names:
            raise BoundaryError(f"Unparsable boundary declaration: {content_type!r}")
        return None
    if isinstance(value, tuple):  # RFC 2231 encoded parameter
        value = value[2]
    if not value or not _BOUNDARY_RE.match(value):
        raise BoundaryError(f"Invalid boundary declaration: {content_type!r}")
    return value


def _parse_part(raw: bytes) -> Part:
    """Split one raw part into headers and payload."""
    if raw.startswith(_CRLF):
        header_block, data = b"", raw[2:]
    else:
        sep = raw.find(_CRLF + _CRLF)
        if sep == -1:
            raise TruncatedPartError("Multipart part has no header/body separator")
        header_block, data = raw[:sep], raw[sep + 4 :]

    msg = BytesParser().parsebytes(header_block + _CRLF + _CRLF, headersonly=True)
    headers = {k.lower(): str(v) for k, v in msg.items()}
    name = msg.get_param("name", header="content-disposition")
    if isinstance(name, tuple):
        name = name[2]
    return Part(name=name, headers=headers, data=data)


def decode_parts(content_type: Optional[str], body: bytes) -> List[Part]:
    """Split a multipart *body* into :class:`Part` objects.

    Args:
        content_type: Response ``Content-Type`` header (may be ``None``).
        body: Full response body.

    Returns:
        Parts in body order; an empty list when no boundary is declared or
        the body is empty.

    Raises:
        BoundaryError: Malformed declaration with a body present, or a body
            that never contains the declared delimiter.
        TruncatedPartError: Body ends before the closing delimiter.
    """
    try:
        boundary = extract_boundary(content_type)
    except BoundaryError:
        if not body:
            return []
        raise
    if boundary is None or not body:
        return []

    dash = b"--" + boundary.encode("latin-1")
    start = body.find(dash)
    if start == -1:
        raise BoundaryError(f"Body does not contain boundary {boundary!r}")
    pos = start + len(dash)

    parts: List[Part] = []
    while True:
        if body.startswith(b"--", pos):
            return parts
        eol = body.find(_CRLF, pos)
        if eol == -1:
            raise TruncatedPartError("Multipart body ends after a delimiter")
        pos = eol + 2
        nxt = body.find(_CRLF + dash, pos)
        if nxt == -1:
            raise TruncatedPartError(
                f"Multipart body truncated in part {len(parts) + 1} (no closing delimiter)"
            )
        parts.append(_parse_part(body[pos:nxt]))
        pos = nxt + 2 + len(dash)


def parse_result(part: Part, index: int) -> ResultFile:
    """Parse *part* as a DICOM file.

    Raises:
        PartDecodeError: When the payload is not DICOM or has no SOPInstanceUID.
    """
    try:
        ds = pydicom.dcmread(io.BytesIO(part.data))
    except Exception as exc:  # noqa: BLE001 – any parser failure is a bad part
        raise PartDecodeError(
            f"Part {index} ({part.name or 'unnamed'}) is not a valid DICOM file: {exc}"
        ) from exc

    instance_key = str(ds.get("SOPInstanceUID") or "").strip()
    if not instance_key:
        raise PartDecodeError(f"Part {index} ({part.name or 'unnamed'}) has no SOPInstanceUID")
    if not is_plain_uid(instance_key):
        raise PartDecodeError(
            f"Part {index} ({part.name or 'unnamed'}) has an invalid SOPInstanceUID: {instance_key!r}"
        )
    return ResultFile(instance_key=instance_key, data=part.data, dataset=ds)


def decode_results(content_type: Optional[str], body: bytes) -> List[ResultFile]:
    """Decode a result response into DICOM :class:`ResultFile` objects.

    Returns:
        Zero or more result files; zero means the service had no output.

    Raises:
        CodecError: Any boundary, truncation or per-part parse failure.
    """
    return [parse_result(p, i) for i, p in enumerate(decode_parts(content_type, body), 1)]

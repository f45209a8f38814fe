"""
Light-weight HTTP helpers for interacting with the Milvue REST API.

Only the mechanics of *sending* a request belong here: URL construction,
headers (including the API key) and timeouts.  Callers receive the raw
``requests.Response`` and decide how to interpret it; the single exception is
:func:`raise_for_status`, which turns a non-2xx answer into a
:class:`~milvue_batch.errors.StatusResponseError`.

Network failures raised by ``requests`` are wrapped in
:class:`~milvue_batch.errors.TransportError` so the pipeline can treat every
request-level failure uniformly.

Functions
---------
post_study
    Upload one study as a streamed multipart body.
get_study_status
    Fetch the processing status of one study.
get_study_results
    Fetch the results of one study for one parameter set.
"""

import logging
import os
from typing import Dict, Optional

import requests

from ..errors import StatusResponseError, TransportError
from ..params import ParameterSet
from ..pipelines.codec import DICOM_CONTENT_TYPE, EncodedBundle

logger = logging.getLogger(__name__)

API_VERSION = "v3"
API_KEY_HEADER = "x-goog-meta-owner"
DEFAULT_TIMEOUT = 60.0


def _default_timeout() -> Optional[float]:
    """Return the timeout configured via ``MILVUE_TIMEOUT`` or ``DEFAULT_TIMEOUT``."""
    env = os.getenv("MILVUE_TIMEOUT")
    if not env:
        return DEFAULT_TIMEOUT
    try:
        return float(env)
    except ValueError:
        return DEFAULT_TIMEOUT


def studies_url(base_url: str, *segments: str) -> str:
    """Return ``<base_url>/v3/studies[/<segment>...]``."""
    parts = [base_url.rstrip("/"), API_VERSION, "studies", *segments]
    return "/".join(parts)


def _headers(api_key: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    headers = {API_KEY_HEADER: api_key, "Accept": "application/json"}
    headers.update(extra or {})
    return headers


def redact_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of *headers* that is safe to log."""
    return {k: ("<redacted>" if k.lower() == API_KEY_HEADER else v) for k, v in headers.items()}


def raise_for_status(response: requests.Response, action: str) -> requests.Response:
    """Return *response* unchanged or raise :class:`StatusResponseError`."""
    if not 200 <= response.status_code < 300:
        raise StatusResponseError(action, response)
    return response


def post_study(
    base_url: str,
    api_key: str,
    bundle: EncodedBundle,
    *,
    timeout: Optional[float] = None,
) -> requests.Response:
    """Upload one study.

    Args:
        base_url: Root URL of the Milvue environment.
        api_key: Value sent in the ``x-goog-meta-owner`` header.
        bundle: Streamed multipart payload from
            :func:`~milvue_batch.pipelines.codec.encode_parts`.
        timeout: Request timeout in seconds; ``None`` uses the default.

    Returns:
        The raw :class:`requests.Response` object.

    Raises:
        TransportError: When the request could not be sent.
    """
    url = studies_url(base_url)
    headers = _headers(
        api_key, {"Content-Type": bundle.content_type, "type": DICOM_CONTENT_TYPE}
    )
    logger.debug("POST %s headers=%s parts=%d", url, redact_headers(headers), len(bundle.part_names))

    if timeout is None:
        timeout = _default_timeout()
    try:
        return requests.post(url, headers=headers, data=bundle.body, timeout=timeout)
    except requests.RequestException as exc:
        raise TransportError(f"POST {url} failed: {exc}") from exc


def get_study_status(
    base_url: str,
    api_key: str,
    study_key: str,
    *,
    timeout: Optional[float] = None,
) -> requests.Response:
    """Send ``GET /v3/studies/{study_key}/status``.

    Raises:
        TransportError: When the request could not be sent.
    """
    url = studies_url(base_url, study_key, "status")
    if timeout is None:
        timeout = _default_timeout()
    try:
        return requests.get(url, headers=_headers(api_key), timeout=timeout)
    except requests.RequestException as exc:
        raise TransportError(f"GET {url} failed: {exc}") from exc


def get_study_results(
    base_url: str,
    api_key: str,
    study_key: str,
    params: ParameterSet,
    *,
    timeout: Optional[float] = None,
) -> requests.Response:
    """Send ``GET /v3/studies/{study_key}`` with *params* on the query string.

    Raises:
        TransportError: When the request could not be sent.
    """
    url = studies_url(base_url, study_key)
    query = params.to_query_params()
    logger.debug("GET %s params=%s", url, query)
    if timeout is None:
        timeout = _default_timeout()
    try:
        return requests.get(url, headers=_headers(api_key), params=query, timeout=timeout)
    except requests.RequestException as exc:
        raise TransportError(f"GET {url} failed: {exc}") from exc

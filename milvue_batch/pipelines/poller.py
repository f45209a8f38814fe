"""Status polling: wait until the service reports a study as ``done``."""

from __future__ import annotations

import threading
import time
from typing import Optional

import structlog

from ..api import client
from ..errors import PollTimeoutError, ProtocolError, StudyCancelled
from ..models import StatusResponse

POLL_INTERVAL = 3.0


def get_status_once(
    base_url: str,
    api_key: str,
    study_key: str,
    *,
    timeout: Optional[float] = None,
) -> StatusResponse:
    """Issue a single status request and validate the JSON body.

    Raises:
        TransportError: The request could not be sent.
        StatusResponseError: Non-2xx answer.
        ProtocolError: Body is not JSON or lacks a required field.
    """
    resp = client.get_study_status(base_url, api_key, study_key, timeout=timeout)
    client.raise_for_status(resp, f"Status request for study {study_key}")
    try:
        payload = resp.json()
    except ValueError as exc:
        raise ProtocolError(f"Status response for {study_key} is not JSON: {exc}") from exc
    return StatusResponse.from_payload(payload)


def wait_for_done(
    base_url: str,
    api_key: str,
    study_key: str,
    *,
    interval: float = POLL_INTERVAL,
    max_attempts: Optional[int] = None,
    deadline: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
    logger=None,
) -> StatusResponse:
    """Poll the status endpoint until ``status == "done"``.

    A request is issued immediately; every further request is preceded by an
    ``interval``-second wait on *cancel*, so the sleep can be interrupted and
    never blocks other workers.

    Args:
        base_url: Root URL of the Milvue environment.
        api_key: API key header value.
        study_key: ``StudyInstanceUID`` to poll.
        interval: Seconds between two requests.
        max_attempts: Maximum number of requests; ``None`` means unlimited.
        deadline: ``time.monotonic()`` value after which polling stops.
        cancel: Event that aborts polling when set.
        timeout: Per-request timeout forwarded to the transport.
        logger: structlog logger; the module logger is used when omitted.

    Returns:
        The terminal :class:`StatusResponse`.

    Raises:
        PollTimeoutError: *max_attempts* or *deadline* exhausted.
        StudyCancelled: *cancel* was set.
        TransportError, StatusResponseError, ProtocolError: Request failures.
    """
    log = logger or structlog.get_logger(__name__)
    cancel = cancel or threading.Event()
    attempt = 0

    while True:
        if cancel.is_set():
            raise StudyCancelled(f"Polling cancelled for study {study_key}")
        if attempt and deadline is not None and time.monotonic() >= deadline:
            raise PollTimeoutError(
                f"Study {study_key} not done before its deadline ({attempt} request(s))"
            )

        attempt += 1
        status = get_status_once(base_url, api_key, study_key, timeout=timeout)
        log.debug("status polled", attempt=attempt, status=status.status, message=status.message)
        if status.is_done:
            log.info("study processed", attempts=attempt, version=status.version)
            return status

        if max_attempts is not None and attempt >= max_attempts:
            raise PollTimeoutError(
                f"Study {study_key} still '{status.status}' after {attempt} request(s)"
            )
        wait_for = interval
        if deadline is not None:
            wait_for = max(0.0, min(interval, deadline - time.monotonic()))
        if cancel.wait(wait_for):
            raise StudyCancelled(f"Polling cancelled for study {study_key}")

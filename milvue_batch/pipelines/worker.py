"""
Per-study worker: upload → poll → fan-out download.

A :class:`StudyWorker` owns exactly one study for the duration of a run.  It
never lets an exception escape: whatever goes wrong is logged with the study
key and turned into a ``failed`` :class:`~milvue_batch.models.StudyOutcome`,
so one broken study cannot disturb the others.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Executor
from pathlib import Path
from typing import Optional, Tuple

import structlog

from ..api import client
from ..config import RunConfig
from ..errors import StudyCancelled
from ..models import Event, EventKind, Study, StudyOutcome, StudyState
from .codec import encode_parts, study_parts
from .events import EventBus
from .fanout import download_results
from .poller import wait_for_done


class StudyWorker:
    """Drive one study through its lifecycle.

    Args:
        study: Study to process.
        config: Run configuration (credentials, parameter sets, budgets).
        bus: Event bus receiving lifecycle events.
        download_executor: Shared pool that hosts the result downloads.
        logger: Base structlog logger; ``study=<key>`` is bound on top.
    """

    def __init__(
        self,
        study: Study,
        config: RunConfig,
        bus: EventBus,
        download_executor: Executor,
        logger=None,
    ) -> None:
        self.study = study
        self.config = config
        self.bus = bus
        self.download_executor = download_executor
        self._base_log = logger
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._state = StudyState.READY
        self._error: Optional[str] = None
        self._written: Tuple[Path, ...] = ()
        self._download_errors: Tuple[str, ...] = ()

    # ------------------------------------------------------------------ #
    @property
    def key(self) -> str:
        return self.study.key

    @property
    def state(self) -> StudyState:
        with self._lock:
            return self._state

    def cancel(self) -> None:
        """Ask the worker to stop at its next interruption point."""
        self._cancel.set()

    def outcome(self) -> StudyOutcome:
        with self._lock:
            return StudyOutcome(
                study_key=self.key,
                state=self._state,
                error=self._error,
                written=self._written,
                download_errors=self._download_errors,
            )

    # ------------------------------------------------------------------ #
    def _log(self):
        return (self._base_log or structlog.get_logger("milvue_batch.worker")).bind(
            study=self.key
        )

    def _set_state(self, state: StudyState) -> None:
        with self._lock:
            self._state = state

    def _fail(self, log, stage: str, exc: BaseException) -> None:
        with self._lock:
            self._state = StudyState.FAILED
            self._error = f"{stage}: {exc}"
        log.error("study failed", stage=stage, error=str(exc), error_type=type(exc).__name__)

    # ------------------------------------------------------------------ #
    def upload(self) -> bool:
        """Upload every file of the study in one multipart request.

        Returns:
            ``True`` when the service accepted the study.
        """
        log = self._log()
        if self.state is StudyState.FAILED:
            return False
        self._set_state(StudyState.UPLOADING)
        try:
            if self._cancel.is_set():
                raise StudyCancelled(f"Upload cancelled for study {self.key}")
            bundle = encode_parts(study_parts(self.study))
            log.info("uploading study", files=len(self.study))
            resp = client.post_study(
                self.config.base_url,
                self.config.api_key.get_secret_value(),
                bundle,
                timeout=self.config.request_timeout,
            )
            client.raise_for_status(resp, f"Upload of study {self.key}")
        except Exception as exc:  # noqa: BLE001 – worker boundary
            self._fail(log, "upload", exc)
            return False

        self._set_state(StudyState.UPLOADED)
        self.bus.publish(Event(kind=EventKind.UPLOADED, study_key=self.key))
        self._set_state(StudyState.WAITING_TO_POLL)
        return True

    def finish(self) -> StudyOutcome:
        """Poll until the study is processed, then download every variant."""
        log = self._log()
        if self.state is StudyState.FAILED:
            return self.outcome()

        cfg = self.config
        api_key = cfg.api_key.get_secret_value()
        deadline = (
            time.monotonic() + cfg.study_timeout if cfg.study_timeout is not None else None
        )

        self._set_state(StudyState.POLLING)
        try:
            status = wait_for_done(
                cfg.base_url,
                api_key,
                self.key,
                interval=cfg.poll_interval,
                max_attempts=cfg.max_poll_attempts,
                deadline=deadline,
                cancel=self._cancel,
                timeout=cfg.request_timeout,
                logger=log,
            )
        except Exception as exc:  # noqa: BLE001 – worker boundary
            self._fail(log, "poll", exc)
            return self.outcome()

        self._set_state(StudyState.PREDICTED)
        self.bus.publish(
            Event(kind=EventKind.PREDICTED, study_key=self.key, detail=status.version)
        )

        self._set_state(StudyState.DOWNLOADING)
        try:
            result = download_results(
                cfg.base_url,
                api_key,
                self.key,
                cfg.parameter_sets,
                output_dir=cfg.output_dir,
                executor=self.download_executor,
                timeout=cfg.request_timeout,
                cancel=self._cancel,
                logger=log,
            )
        except Exception as exc:  # noqa: BLE001 – worker boundary
            self._fail(log, "download", exc)
            return self.outcome()

        if self._cancel.is_set():
            self._fail(
                log, "download", StudyCancelled(f"Download cancelled for study {self.key}")
            )
            with self._lock:
                self._written = tuple(result.written)
            return self.outcome()

        with self._lock:
            self._written = tuple(result.written)
            self._download_errors = tuple(
                f"{label}: {msg}" for label, msg in result.errors.items()
            )
        self.bus.publish(
            Event(
                kind=EventKind.DOWNLOADED,
                study_key=self.key,
                detail=f"{len(result.written)} file(s)",
            )
        )
        self._set_state(StudyState.DONE)
        log.info(
            "study complete",
            files=len(result.written),
            empty=len(result.empty),
            failed_downloads=len(result.errors),
        )
        return self.outcome()

    def run(self) -> StudyOutcome:
        """Full lifecycle in one call."""
        if not self.upload():
            return self.outcome()
        return self.finish()

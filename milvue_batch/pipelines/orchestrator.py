"""
Batch orchestration: run every study of an inventory concurrently.

:class:`Orchestrator` hosts one :class:`~.worker.StudyWorker` per study on a
``ThreadPoolExecutor`` bounded by ``max_concurrent_studies``; result
downloads share a second pool bounded by ``max_concurrent_downloads``.  The
:class:`~.events.EventBus` runs for the lifetime of :meth:`Orchestrator.run`.

With ``wait_for_all_uploads`` the run is split into two phases: every upload
is submitted and joined first, then polling and downloading start for the
studies whose upload succeeded.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import structlog

from ..config import RunConfig
from ..errors import ConfigurationError
from ..models import BatchReport, Inventory, StudyOutcome
from .events import EventBus
from .inventory import build_inventory, discover_files
from .worker import StudyWorker


class Orchestrator:
    """Schedule :class:`StudyWorker` instances for one batch run."""

    def __init__(self, config: RunConfig, logger=None) -> None:
        self.config = config
        self._log = logger
        self.workers: Dict[str, StudyWorker] = {}

    def _validate(self, inventory: Inventory) -> None:
        if not self.config.parameter_sets:
            raise ConfigurationError("At least one parameter set is required")
        if not self.config.api_key.get_secret_value().strip():
            raise ConfigurationError("Missing Milvue API key")
        if not self.config.base_url:
            raise ConfigurationError("Missing Milvue API URL")
        if not inventory:
            raise ConfigurationError("Inventory is empty: nothing to process")

    def cancel(self) -> None:
        """Set every worker's cancellation event."""
        for worker in self.workers.values():
            worker.cancel()

    # ------------------------------------------------------------------ #
    def run(self, inventory: Inventory) -> BatchReport:
        """Process *inventory* and return one outcome per study.

        Raises:
            ConfigurationError: Before any worker starts when the run cannot
                proceed.
            KeyboardInterrupt: Re-raised after every worker was cancelled.
        """
        self._validate(inventory)
        cfg = self.config
        log = self._log or structlog.get_logger("milvue_batch.orchestrator")
        log.info(
            "starting batch",
            studies=len(inventory),
            parameter_sets=[p.label() for p in cfg.parameter_sets],
            jobs=cfg.max_concurrent_studies,
            downloads=cfg.max_concurrent_downloads,
            phased=cfg.wait_for_all_uploads,
        )

        bus = EventBus(cfg.event_queue_size, logger=log).start()
        outcomes: Dict[str, StudyOutcome] = {}
        try:
            with ThreadPoolExecutor(
                max_workers=cfg.max_concurrent_downloads,
                thread_name_prefix="milvue-download",
            ) as downloads, ThreadPoolExecutor(
                max_workers=cfg.max_concurrent_studies,
                thread_name_prefix="milvue-study",
            ) as studies:
                self.workers = {
                    key: StudyWorker(study, cfg, bus, downloads, logger=log)
                    for key, study in inventory.items()
                }
                try:
                    if cfg.wait_for_all_uploads:
                        self._run_phased(studies, log)
                    else:
                        futures = [studies.submit(w.run) for w in self.workers.values()]
                        wait(futures)
                except KeyboardInterrupt:
                    log.warning("interrupted – cancelling workers")
                    self.cancel()
                    raise
        finally:
            events = bus.close()

        for key, worker in self.workers.items():
            outcomes[key] = worker.outcome()

        report = BatchReport(outcomes=tuple(outcomes.values()), events=events)
        log.info(
            "batch finished",
            studies=len(report.outcomes),
            failed=len(report.failed),
            files=len(report.written),
            uploaded=events.uploaded,
            predicted=events.predicted,
            downloaded=events.downloaded,
        )
        return report

    def _run_phased(self, studies: ThreadPoolExecutor, log) -> None:
        uploads: Dict[Future, StudyWorker] = {
            studies.submit(w.upload): w for w in self.workers.values()
        }
        wait(uploads)
        ready: List[StudyWorker] = [w for f, w in uploads.items() if f.result()]
        log.info("all uploads finished", accepted=len(ready), total=len(uploads))
        wait([studies.submit(w.finish) for w in ready])


def run_batch(
    paths: Iterable[Path],
    config: RunConfig,
    *,
    recursive: bool = False,
    logger=None,
) -> Optional[BatchReport]:
    """Inventory *paths* and process every study found.

    Returns:
        The :class:`BatchReport`, or ``None`` when no readable DICOM file was
        found and nothing was submitted.
    """
    inventory = build_inventory(discover_files(paths, recursive=recursive))
    if inventory is None:
        return None
    return Orchestrator(config, logger=logger).run(inventory)

"""
Result fan-out: one concurrent download per parameter set for a study.

Each task requests one result variant, decodes the multipart response and
writes every returned DICOM instance to ``<output_dir>/<study_key>/``.  Tasks
are independent – one failing never cancels its siblings – and
:func:`download_results` only returns once all of them have finished.

Files are written to a ``.part`` sibling first and then renamed, so an
interrupted download never leaves a truncated ``.dcm`` behind.
"""

from __future__ import annotations

import os
import threading
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import structlog

from ..api import client
from ..errors import StudyCancelled
from ..models import ResultFile
from ..params import ParameterSet
from .codec import decode_results, is_plain_uid


@dataclass
class FanoutResult:
    """Aggregated outcome of every parameter-set task for one study.

    Attributes:
        written: Files written to disk, in completion order.
        empty: Labels of parameter sets that returned no output.
        errors: ``label -> message`` for parameter sets that failed.
    """

    written: List[Path] = field(default_factory=list)
    empty: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


def write_result(study_dir: Path, result: ResultFile) -> Path:
    """Atomically write *result* as ``<study_dir>/<SOPInstanceUID>.dcm``.

    Raises:
        ValueError: When the instance key could name a path outside *study_dir*.
    """
    if not is_plain_uid(result.instance_key):
        raise ValueError(f"Refusing to write result with key {result.instance_key!r}")
    study_dir.mkdir(parents=True, exist_ok=True)
    target = study_dir / result.filename
    tmp = target.with_name(target.name + ".part")
    tmp.write_bytes(result.data)
    os.replace(tmp, target)
    return target


def download_parameter_set(
    base_url: str,
    api_key: str,
    study_key: str,
    params: ParameterSet,
    *,
    output_dir: Path,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    logger=None,
) -> List[Path]:
    """Download, decode and write one result variant.

    Returns:
        Written paths; empty when the service returned no output.

    Raises:
        StudyCancelled: *cancel* was set before the files were written.
        TransportError, StatusResponseError, CodecError: Request or decode
            failures for this parameter set.
    """
    log = (logger or structlog.get_logger(__name__)).bind(params=params.label())

    resp = client.get_study_results(base_url, api_key, study_key, params, timeout=timeout)
    client.raise_for_status(resp, f"Result request for study {study_key}")
    results = decode_results(resp.headers.get("Content-Type"), resp.content)

    if not results:
        log.info("No output for parameter set")
        return []
    if cancel is not None and cancel.is_set():
        raise StudyCancelled(f"Download cancelled for study {study_key}")

    if not is_plain_uid(study_key):
        raise ValueError(f"Refusing to write results for study key {study_key!r}")
    study_dir = Path(output_dir) / study_key
    written = [write_result(study_dir, r) for r in results]
    log.info("results written", files=len(written), directory=str(study_dir))
    return written


def download_results(
    base_url: str,
    api_key: str,
    study_key: str,
    parameter_sets: Sequence[ParameterSet],
    *,
    output_dir: Path,
    executor: Executor,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    logger=None,
) -> FanoutResult:
    """Run :func:`download_parameter_set` for every set concurrently.

    Args:
        base_url: Root URL of the Milvue environment.
        api_key: API key header value.
        study_key: Study whose results are fetched.
        parameter_sets: Result variants to request.
        output_dir: Root output directory.
        executor: Pool hosting the download tasks (bounds concurrency).
        timeout: Per-request timeout.
        cancel: Study cancellation event.
        logger: structlog logger bound to the study.

    Returns:
        :class:`FanoutResult` once every task has joined.
    """
    log = logger or structlog.get_logger(__name__)
    futures: Dict[Future, ParameterSet] = {
        executor.submit(
            download_parameter_set,
            base_url,
            api_key,
            study_key,
            params,
            output_dir=output_dir,
            timeout=timeout,
            cancel=cancel,
            logger=log,
        ): params
        for params in parameter_sets
    }
    wait(futures)

    outcome = FanoutResult()
    for fut, params in futures.items():
        label = params.label()
        try:
            written = fut.result()
        except Exception as exc:  # noqa: BLE001 – isolate each parameter set
            log.error("download failed", params=label, error=str(exc))
            outcome.errors[label] = str(exc)
            continue
        if written:
            outcome.written.extend(written)
        else:
            outcome.empty.append(label)
    return outcome

"""
CLI wrapper around :pymod:`milvue_batch.pipelines.orchestrator`.

The command inventories the given DICOM files, uploads every study to Milvue,
waits for the analysis and writes the results to
``<OUTPUT>/<StudyInstanceUID>/<SOPInstanceUID>.dcm``.

Key features
------------
* One result download per selected inference command (``-u`` / ``-x``).
* Bounded concurrency for studies (``--jobs``) and downloads (``--downloads``).
* Per-study budgets (``--max-polls`` / ``--study-timeout``).
* Optional two-phase mode (``--wait-all-uploads``).
* Exit status 0 even when individual studies fail, unless ``--fail-on-error``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Tuple

import click
import structlog

from milvue_batch.config import load_run_config
from milvue_batch.errors import ConfigurationError
from milvue_batch.params import (
    InferenceCommand,
    Language,
    OutputFormat,
    OutputSelection,
    RecapTheme,
    StaticReportFormat,
    StructuredReportFormat,
    params_from_options,
)
from milvue_batch.pipelines.orchestrator import run_batch
from milvue_batch.utils.display import echo_banner, echo_report

from .options import connection_options, usage_error


def _choice(enum_cls) -> click.Choice:
    return click.Choice([m.value for m in enum_cls])


# ---------------------------------------------------------------------------
# Click command definition
# ---------------------------------------------------------------------------
@click.command(
    name="run",
    help=(
        "Upload DICOM studies to Milvue, wait for the analysis and download "
        "the results.\n\nPATHS may be files or directories; use -r to descend "
        "into sub-directories."
    ),
)
@click.argument(
    "paths",
    type=click.Path(path_type=Path, exists=True),
    nargs=-1,
    required=True,
)
# ───────── destination / discovery ──────────────────────────────────────────
@click.option(
    "-o",
    "--output",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Root directory for downloaded results (default: current directory).",
)
@click.option("-r", "--recursive", is_flag=True, help="Search directories recursively.")
# ───────── inference / result parameters ────────────────────────────────────
@click.option("-u", "--smarturgences", is_flag=True, help="Request SmartUrgences results.")
@click.option("-x", "--smartxpert", is_flag=True, help="Request SmartXpert results.")
@click.option("-l", "--language", type=_choice(Language), default=Language.EN.value)
@click.option(
    "-f", "--output-format", type=_choice(OutputFormat), default=OutputFormat.OVERLAY.value
)
@click.option(
    "-O",
    "--output-selection",
    type=_choice(OutputSelection),
    default=OutputSelection.ALL.value,
)
@click.option("-t", "--recap-theme", type=_choice(RecapTheme), default=RecapTheme.DARK.value)
@click.option(
    "-s",
    "--static-report",
    type=_choice(StaticReportFormat),
    default=StaticReportFormat.RGB.value,
)
@click.option(
    "-S",
    "--structured-report",
    type=_choice(StructuredReportFormat),
    default=StructuredReportFormat.NONE.value,
)
@click.option("--timezone", default=None, help="UTC offset in hours, e.g. +2.")
@click.option("--signed-url", is_flag=True, help="Ask for signed URLs instead of files.")
# ───────── connection / configuration ───────────────────────────────────────
@connection_options
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    help="YAML file with run settings; command-line flags win over it.",
)
# ───────── scheduling ───────────────────────────────────────────────────────
@click.option("--poll-interval", type=click.FloatRange(min=0), default=None,
              help="Seconds between status requests [default: 3].")
@click.option("--max-polls", type=click.IntRange(min=1), default=None,
              help="Give up on a study after this many status requests.")
@click.option("--study-timeout", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Give up polling a study after this many seconds.")
@click.option("-j", "--jobs", type=click.IntRange(min=1), default=None,
              help="Studies processed concurrently [default: 4].")
@click.option("--downloads", type=click.IntRange(min=1), default=None,
              help="Result downloads running concurrently [default: 4].")
@click.option("--wait-all-uploads", is_flag=True,
              help="Finish every upload before polling any study.")
@click.option("--fail-on-error", is_flag=True,
              help="Exit with status 1 when at least one study failed.")
@click.pass_context
def cli(  # noqa: D401
    ctx: click.Context,
    paths: Tuple[Path, ...],
    output_dir: Path | None,
    recursive: bool,
    smarturgences: bool,
    smartxpert: bool,
    language: str,
    output_format: str,
    output_selection: str,
    recap_theme: str,
    static_report: str,
    structured_report: str,
    timezone: str | None,
    signed_url: bool,
    api_key: str | None,
    api_url: str | None,
    environment: str | None,
    config_file: Path | None,
    poll_interval: float | None,
    max_polls: int | None,
    study_timeout: float | None,
    jobs: int | None,
    downloads: int | None,
    wait_all_uploads: bool,
    fail_on_error: bool,
) -> None:
    """Entry-point for ``milvue-batch run``."""
    log = structlog.get_logger("milvue_batch")

    commands = [
        cmd
        for flag, cmd in (
            (smarturgences, InferenceCommand.SMART_URGENCES),
            (smartxpert, InferenceCommand.SMART_XPERT),
        )
        if flag
    ]

    overrides: Dict[str, Any] = {
        "api_key": api_key,
        "base_url": api_url,
        "output_dir": output_dir,
        "poll_interval": poll_interval,
        "max_poll_attempts": max_polls,
        "study_timeout": study_timeout,
        "max_concurrent_studies": jobs,
        "max_concurrent_downloads": downloads,
        # Flags only override the file when they are switched on.
        "wait_for_all_uploads": wait_all_uploads or None,
        "fail_on_study_error": fail_on_error or None,
    }

    try:
        if commands:
            overrides["parameter_sets"] = params_from_options(
                commands,
                language=Language(language),
                output_format=OutputFormat(output_format),
                output_selection=OutputSelection(output_selection),
                recap_theme=RecapTheme(recap_theme),
                static_report_format=StaticReportFormat(static_report),
                structured_report_format=StructuredReportFormat(structured_report),
                timezone=timezone,
                signed_url=signed_url or None,
            )
        config = load_run_config(
            config_file=config_file,
            environment=environment,
            overrides=overrides,
        )
    except ConfigurationError as exc:
        raise usage_error(exc) from exc

    echo_banner("Milvue batch")
    try:
        report = run_batch(paths, config, recursive=recursive, logger=log)
    except ConfigurationError as exc:
        raise usage_error(exc) from exc

    if report is None:
        log.warning("No DICOM study found; nothing to upload")
        return

    echo_report(report)
    if config.fail_on_study_error and report.failed:
        ctx.exit(1)

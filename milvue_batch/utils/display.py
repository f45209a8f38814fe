"""Utility functions to print formatted CLI messages for run summaries."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:  # pragma: no cover
    from ..models import BatchReport, Inventory, StatusResponse

__all__ = [
    "echo_banner",
    "echo_study",
    "echo_success",
    "echo_failure",
    "echo_inventory",
    "echo_report",
    "echo_status",
]


def echo_banner(text: str) -> None:
    """Print a colourful banner announcing a processing step.

    Args:
        text: Banner text.
    """
    click.secho(f"\n=== {text} ===", fg="cyan")


def echo_study(key: str, detail: str | None = None) -> None:
    """Echo a bullet with a study key and an optional detail."""
    if detail:
        click.echo(f"  • {key}  ({detail})")
    else:
        click.echo(f"  • {key}")


def echo_success(text: str) -> None:
    """Echo a green success message prefixed with a tick.

    Args:
        text: Message to display.
    """
    click.secho(f"✓ {text}", fg="green")


def echo_failure(text: str) -> None:
    click.secho(f"✗ {text}", fg="red")


def echo_inventory(inventory: "Inventory") -> None:
    """List every study and its instance count."""
    echo_banner(f"{len(inventory)} study(ies)")
    for key, study in inventory.items():
        echo_study(key, f"{len(study)} file(s)")


def echo_report(report: "BatchReport") -> None:
    """Print the end-of-run summary: one line per study, then the totals."""
    echo_banner("Summary")
    for outcome in report.outcomes:
        if outcome.failed:
            echo_failure(f"{outcome.study_key}: {outcome.error}")
            continue
        detail = f"{len(outcome.written)} file(s)"
        if outcome.download_errors:
            detail += f", {len(outcome.download_errors)} download error(s)"
        echo_study(outcome.study_key, detail)

    ev = report.events
    click.echo(
        f"\nuploaded={ev.uploaded}  predicted={ev.predicted}  downloaded={ev.downloaded}"
    )
    if report.failed:
        echo_failure(f"{len(report.failed)} of {len(report.outcomes)} study(ies) failed")
    else:
        echo_success(f"{len(report.outcomes)} study(ies) processed")


def echo_status(status: "StatusResponse") -> None:
    click.echo(f"StudyInstanceUID: {status.study_instance_uid}")
    click.echo(f"status:           {status.status}")
    click.echo(f"version:          {status.version}")
    click.echo(f"message:          {status.message}")

"""``milvue-batch inventory`` – show how files group into studies, offline."""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

import click
import structlog

from milvue_batch.pipelines.inventory import build_inventory, discover_files
from milvue_batch.utils.display import echo_inventory

log = structlog.get_logger()


@click.command(
    name="inventory",
    help="List the studies found in PATHS without contacting the service.",
)
@click.argument(
    "paths",
    type=click.Path(path_type=Path, exists=True),
    nargs=-1,
    required=True,
)
@click.option("-r", "--recursive", is_flag=True, help="Search directories recursively.")
def cli(paths: Tuple[Path, ...], recursive: bool) -> None:
    """Entry-point for ``milvue-batch inventory``."""
    inventory = build_inventory(discover_files(paths, recursive=recursive))
    if inventory is None:
        log.warning("No DICOM study found")
        return
    echo_inventory(inventory)

"""``milvue-batch status`` – one status request for a study already uploaded."""

from __future__ import annotations

import click

from milvue_batch.config import MilvueEnvironment, resolve_api_key, resolve_base_url
from milvue_batch.errors import ConfigurationError, MilvueError
from milvue_batch.pipelines.poller import get_status_once
from milvue_batch.utils.display import echo_status

from .options import connection_options, usage_error


@click.command(name="status", help="Print the processing status of STUDY_UID.")
@click.argument("study_uid")
@connection_options
def cli(
    study_uid: str,
    api_key: str | None,
    api_url: str | None,
    environment: str | None,
) -> None:
    """Entry-point for ``milvue-batch status``."""
    try:
        key = resolve_api_key(api_key)
        url = resolve_base_url(api_url, environment or MilvueEnvironment.DEFAULT)
    except ConfigurationError as exc:
        raise usage_error(exc) from exc

    try:
        status = get_status_once(url, key, study_uid)
    except MilvueError as exc:
        raise click.ClickException(str(exc)) from exc
    echo_status(status)

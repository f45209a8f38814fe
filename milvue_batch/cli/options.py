"""Click options shared by the commands that talk to the Milvue API."""

from __future__ import annotations

from typing import Callable

import click

from milvue_batch.config import MilvueEnvironment
from milvue_batch.errors import ConfigurationError


def connection_options(func: Callable) -> Callable:
    """Attach ``--api-key``, ``--api-url`` and ``--environment`` to *func*."""
    func = click.option(
        "-e",
        "--environment",
        type=click.Choice([e.value for e in MilvueEnvironment]),
        default=None,
        help="Read the API URL from MILVUE_API_URL_<ENV> (default: MILVUE_API_URL).",
    )(func)
    func = click.option(
        "-a",
        "--api-url",
        help="Milvue API root URL; overrides the environment variable.",
    )(func)
    func = click.option(
        "-k",
        "--api-key",
        help="Milvue API key; overrides MILVUE_API_KEY.",
    )(func)
    return func


def usage_error(exc: ConfigurationError) -> click.UsageError:
    """Translate a configuration failure into Click's usage error."""
    return click.UsageError(str(exc))

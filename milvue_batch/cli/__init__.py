"""Expose the project-wide Click group for the ``milvue-batch`` script.

The module:

* declares a single Click *group* called :pyfunc:`main`;
* wires the global verbosity flags;
* sets up logging via :pyfunc:`milvue_batch.utils.logging.setup_logging`;
* registers every sub-command located in sibling modules, imported lazily
  so ``milvue-batch --help`` stays fast.
"""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import Any, Dict

import click

from milvue_batch import __version__
from milvue_batch.utils.logging import setup_logging


class LazyGroup(click.Group):
    """Click group that imports sub-commands lazily."""

    def __init__(self, *args, **kwargs):
        self._lazy: dict[str, str] = {}
        super().__init__(*args, **kwargs)

    def set_lazy_command(self, name: str, target: str) -> None:
        """Register *name* to be imported from ``target`` on first use."""
        self._lazy[name] = target

    def list_commands(self, ctx):  # noqa: D401 - Click signature
        return sorted(set(super().list_commands(ctx)) | set(self._lazy))

    def get_command(self, ctx, cmd_name):  # noqa: D401 - Click signature
        """Resolve *cmd_name* from the eager map or import table."""
        cmd = super().get_command(ctx, cmd_name)
        if cmd is not None:
            return cmd
        target = self._lazy.get(cmd_name)
        if not target:
            return None
        module_name, attr = target.split(":", 1)
        module = importlib.import_module(module_name)
        cmd = getattr(module, attr)
        self.add_command(cmd, name=cmd_name)
        return cmd


# ─────────────────────────────────────────────────────────────────────────────
# Context settings shared by the entire Click hierarchy
# ─────────────────────────────────────────────────────────────────────────────
_CTX: Dict[str, Any] = dict(
    help_option_names=["-h", "--help"],
    show_default=True,
    max_content_width=120,
)


@click.group(
    cls=LazyGroup,
    context_settings=_CTX,
    help="""\b
milvue-batch – upload DICOM studies to Milvue and download the results.

""",
)
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="INFO-level console output.")
@click.option("--debug", is_flag=True, help="DEBUG console output (includes HTTP details).")
@click.option("-q", "--quiet", is_flag=True, help="Only show errors on the console.")
@click.option(
    "--save-logfile",
    type=click.Path(dir_okay=False, writable=True, path_type=Path),
    help="Mirror console output into this plain-text file.",
)
@click.pass_context
def main(  # noqa: D401 – Click requires the callback to be named “main”.
    ctx: click.Context,
    verbose: bool,
    debug: bool,
    quiet: bool,
    save_logfile: Path | None,
) -> None:
    """Root command executed by *milvue-batch*.

    Logging must be configured before any sub-command produces output.
    """
    setup_logging(verbose=verbose, debug=debug, quiet=quiet, extra_text_log=save_logfile)
    ctx.obj = {"verbose": verbose, "debug": debug, "quiet": quiet}


main.set_lazy_command("run", "milvue_batch.cli.run:cli")
main.set_lazy_command("inventory", "milvue_batch.cli.inventory:cli")
main.set_lazy_command("status", "milvue_batch.cli.status:cli")

cli = main
__all__: list[str] = ["main"]

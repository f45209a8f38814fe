"""
milvue_batch package initialisation.

Exposes the version string resolved from the installed distribution metadata
and re-exports the handful of entry-points most callers need::

    from milvue_batch import load_run_config, run_batch

Module attributes
-----------------
__version__ : str
    Semantic version derived from the installed wheel.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("milvue-batch")
except PackageNotFoundError:
    # Source tree without an installed wheel.
    __version__ = "0.0.0"

from .config import load_run_config  # noqa: E402
from .pipelines.orchestrator import Orchestrator, run_batch  # noqa: E402

__all__: list[str] = ["load_run_config", "Orchestrator", "run_batch", "__version__"]

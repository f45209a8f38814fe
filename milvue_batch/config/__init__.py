"""
Configuration package façade.

* :func:`load_run_config` – merge YAML file, environment variables and
  explicit overrides into a validated :class:`RunConfig`.
* :class:`RunConfig` – pydantic model consumed by the orchestrator.
* :class:`MilvueEnvironment` – named API environments and their variables.
"""

from .loader import load_run_config, resolve_api_key, resolve_base_url  # noqa: F401
from .schema import MilvueEnvironment, RunConfig  # noqa: F401

__all__: list[str] = [
    "load_run_config",
    "resolve_api_key",
    "resolve_base_url",
    "MilvueEnvironment",
    "RunConfig",
]

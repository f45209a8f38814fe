"""
Run-configuration loader.

Sources are merged in increasing order of precedence:

1. An optional YAML file (``--config``), read with :func:`yaml.safe_load`.
2. Environment variables – ``MILVUE_API_KEY`` and the URL variable of the
   selected :class:`~milvue_batch.config.schema.MilvueEnvironment`.
3. Explicit overrides supplied by the caller (CLI flags); ``None`` values
   are ignored so an absent flag never hides a lower-precedence value.

The merged mapping is validated once by :class:`RunConfig`.  Missing
credentials and invalid values surface as
:class:`~milvue_batch.errors.ConfigurationError` so the CLI can stop before
any worker is spawned.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schema import API_KEY_ENV, MilvueEnvironment, RunConfig

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────────────
# Credential helpers
# ────────────────────────────────────────────────────────────────────────────
def resolve_api_key(explicit: Optional[str] = None) -> str:
    """Return *explicit* or ``$MILVUE_API_KEY``.

    Raises:
        ConfigurationError: When neither is set.
    """
    key = explicit or os.getenv(API_KEY_ENV)
    if not key:
        raise ConfigurationError(
            f"No API key provided; pass --api-key or set {API_KEY_ENV}."
        )
    return key


def resolve_base_url(
    explicit: Optional[str] = None,
    environment: MilvueEnvironment | str = MilvueEnvironment.DEFAULT,
) -> str:
    """Return *explicit* or the URL variable bound to *environment*.

    Raises:
        ConfigurationError: When neither is set.
    """
    env = MilvueEnvironment(environment)
    url = explicit or os.getenv(env.url_variable)
    if not url:
        raise ConfigurationError(
            f"No API URL provided; pass --api-url or set {env.url_variable}."
        )
    return url


# ────────────────────────────────────────────────────────────────────────────
# YAML
# ────────────────────────────────────────────────────────────────────────────
def _load_yaml(path: Path) -> Dict[str, Any]:
    """Read *path* and return its top-level mapping.

    Raises:
        ConfigurationError: When the file is missing or not a mapping.
    """
    if not path.is_file():
        raise ConfigurationError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    logger.info("Loaded run configuration from %s", path)
    return data


# ────────────────────────────────────────────────────────────────────────────
# Public API
# ────────────────────────────────────────────────────────────────────────────
def load_run_config(
    *,
    config_file: Optional[str | Path] = None,
    environment: MilvueEnvironment | str | None = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> RunConfig:
    """Return a fully validated :class:`RunConfig`.

    Args:
        config_file: Optional YAML document whose keys mirror
            :class:`RunConfig` fields.  It may also carry ``environment``.
        environment: Milvue environment used to look up the URL variable.
            Falls back to the file's ``environment`` key, then ``default``.
        overrides: Explicit values (typically CLI flags) that win over
            every other source.

    Returns:
        Validated configuration.

    Raises:
        ConfigurationError: On missing credentials, missing parameter sets or
            any validation failure.
    """
    merged: Dict[str, Any] = {}
    if config_file is not None:
        merged.update(_load_yaml(Path(config_file).expanduser().resolve()))

    file_env = merged.pop("environment", None)
    env = MilvueEnvironment(environment or file_env or MilvueEnvironment.DEFAULT)

    explicit = {k: v for k, v in (overrides or {}).items() if v is not None}

    # Environment variables sit between the file and explicit flags.
    env_key = os.getenv(API_KEY_ENV)
    if env_key:
        merged["api_key"] = env_key
    env_url = os.getenv(env.url_variable)
    if env_url:
        merged["base_url"] = env_url
    merged.update(explicit)

    if not merged.get("api_key"):
        raise ConfigurationError(
            f"No API key provided; pass --api-key or set {API_KEY_ENV}."
        )
    if not merged.get("base_url"):
        raise ConfigurationError(
            f"No API URL provided; pass --api-url or set {env.url_variable}."
        )
    if not merged.get("parameter_sets"):
        raise ConfigurationError(
            "No inference command provided (use --smarturgences and/or --smartxpert)."
        )

    try:
        return RunConfig(**merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration – {exc}") from exc

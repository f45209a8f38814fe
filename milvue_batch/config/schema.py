"""
Pydantic models describing one *milvue-batch* run.

:class:`RunConfig` is the single value object handed to the orchestrator; the
CLI and the YAML loader only ever translate their inputs into it.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

from ..params import ParameterSet

API_KEY_ENV = "MILVUE_API_KEY"


class MilvueEnvironment(str, Enum):
    """Named Milvue deployments; each reads its URL from its own variable."""

    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"
    DEFAULT = "default"

    @property
    def url_variable(self) -> str:
        return {
            MilvueEnvironment.DEV: "MILVUE_API_URL_DEV",
            MilvueEnvironment.STAGING: "MILVUE_API_URL_STAGING",
            MilvueEnvironment.PROD: "MILVUE_API_URL_PROD",
            MilvueEnvironment.DEFAULT: "MILVUE_API_URL",
        }[self]


class RunConfig(BaseModel, frozen=True):
    """Everything the orchestrator needs to process a batch.

    Attributes:
        api_key: Value of the ``x-goog-meta-owner`` header; never logged.
        base_url: Root URL of the Milvue environment (without ``/v3``).
        parameter_sets: Result variants requested for every study.
        output_dir: Root under which ``<StudyInstanceUID>/`` folders are made.
        poll_interval: Seconds between two status requests.
        max_poll_attempts: Give up polling after this many requests.
        study_timeout: Wall-clock budget per study in seconds.
        max_concurrent_studies: Size of the study worker pool.
        max_concurrent_downloads: Size of the shared download pool.
        wait_for_all_uploads: Finish every upload before any study polls.
        fail_on_study_error: Make the CLI exit non-zero if a study failed.
        event_queue_size: Capacity of the event bus queue.
        request_timeout: Per-request timeout; ``None`` uses ``MILVUE_TIMEOUT``.
    """

    api_key: SecretStr
    base_url: str
    parameter_sets: List[ParameterSet] = Field(min_length=1)
    output_dir: Path = Path(".")
    poll_interval: float = Field(3.0, ge=0)
    max_poll_attempts: Optional[int] = Field(None, ge=1)
    study_timeout: Optional[float] = Field(None, gt=0)
    max_concurrent_studies: int = Field(4, ge=1)
    max_concurrent_downloads: int = Field(4, ge=1)
    wait_for_all_uploads: bool = False
    fail_on_study_error: bool = False
    event_queue_size: int = Field(1024, ge=1)
    request_timeout: Optional[float] = Field(None, gt=0)

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("base_url must not be empty")
        return v

    @field_validator("api_key")
    @classmethod
    def _key_not_blank(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("api_key must not be empty")
        return v

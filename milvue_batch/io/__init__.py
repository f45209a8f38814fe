"""File-format helpers (DICOM header access)."""

from .attributes import read_instance_keys  # noqa: F401

__all__: list[str] = ["read_instance_keys"]

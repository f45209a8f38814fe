"""
Inventory construction: group loose DICOM files into studies.

``build_inventory`` is the only entry-point that touches file contents; it
delegates header access to an *attribute reader* (by default
:func:`milvue_batch.io.read_instance_keys`) so tests can inject a fake one.

Policies
--------
* Unreadable files and files missing a key are skipped with a warning.
* Files produced by Milvue itself (SOP Instance UID under the Milvue UID root)
  are skipped so previously downloaded output is never re-submitted.
* Duplicate SOP Instance UIDs within a study are rejected with a warning;
  the first file seen wins.
* An empty result is reported as ``None`` so callers can exit early.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import AttributeReadError
from ..io.attributes import read_instance_keys
from ..models import Inventory, SourceFile, Study

logger = logging.getLogger(__name__)

# UID root used by Milvue for every instance it generates.
MILVUE_UID_ROOT = "1.2.826.0.1.3680043.10.457"

AttributeReader = Callable[[Path], Tuple[str, str]]


# ─────────────────────────────────────────────────────────────────────────────
# File discovery
# ─────────────────────────────────────────────────────────────────────────────
def discover_files(paths: Iterable[str | Path], *, recursive: bool = False) -> List[Path]:
    """Expand *paths* into a sorted, de-duplicated list of regular files.

    Args:
        paths: Files and/or directories supplied by the caller.
        recursive: Descend into sub-directories of directory arguments.
            Without it only the direct children are listed.

    Returns:
        Sorted list of file paths.  Missing paths are logged and ignored.
    """
    found: Dict[Path, None] = {}
    for raw in paths:
        p = Path(raw).expanduser()
        if p.is_file():
            found[p] = None
        elif p.is_dir():
            children = p.rglob("*") if recursive else p.iterdir()
            for child in children:
                if child.is_file():
                    found[child] = None
        else:
            logger.warning("Skipping %s: no such file or directory", p)
    return sorted(found)


def is_milvue_output(instance_key: str) -> bool:
    """Return ``True`` when *instance_key* was generated by Milvue."""
    return MILVUE_UID_ROOT in instance_key


# ─────────────────────────────────────────────────────────────────────────────
# Inventory
# ─────────────────────────────────────────────────────────────────────────────
def build_inventory(
    paths: Iterable[str | Path],
    *,
    reader: AttributeReader = read_instance_keys,
) -> Optional[Inventory]:
    """Group *paths* by ``StudyInstanceUID``.

    Args:
        paths: Candidate DICOM files (directories are not expanded here; use
            :func:`discover_files` first).
        reader: Callable returning ``(study_key, instance_key)`` for a path
            or raising :class:`AttributeReadError`.

    Returns:
        Mapping of study key to :class:`Study`, or ``None`` when no valid file
        was found.
    """
    grouped: Dict[str, List[SourceFile]] = {}
    seen: Dict[str, Dict[str, Path]] = {}

    for raw in paths:
        path = Path(raw)
        try:
            study_key, instance_key = reader(path)
        except AttributeReadError as exc:
            logger.warning("Skipping %s: %s", path, exc)
            continue

        if is_milvue_output(instance_key):
            logger.warning("Skipping %s: file is a Milvue output", path)
            continue

        owners = seen.setdefault(study_key, {})
        if instance_key in owners:
            logger.warning(
                "Skipping %s: SOPInstanceUID %s already provided by %s",
                path,
                instance_key,
                owners[instance_key],
            )
            continue
        owners[instance_key] = path

        grouped.setdefault(study_key, []).append(
            SourceFile(path=path, study_key=study_key, instance_key=instance_key)
        )
        logger.debug("Added %s to study %s", path, study_key)

    if not grouped:
        return None

    inventory: Inventory = {
        key: Study(key=key, files=tuple(files)) for key, files in grouped.items()
    }
    logger.info(
        "Inventory: %d file(s) in %d study(ies)",
        sum(len(s) for s in inventory.values()),
        len(inventory),
    )
    return inventory

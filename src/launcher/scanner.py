"""
Library scanning - enumerate the loadable artefacts under a root directory.
"""
import logging
import os
from pathlib import Path
from typing import FrozenSet, List, Optional, Union

from launcher.errors import ScanFailedError
from launcher.logging_utils import log_duration

logger = logging.getLogger(__name__)

# Compiled-output trees are loaded as a single location
CLASSES_DIR = "classes"


def scan_artifacts(root: Optional[Union[str, Path]]) -> List[Path]:
    """
    Collect the artefact locations reachable from a root path.

    A directory named ``classes`` is a single location and is not walked.
    Any other directory is walked, every file is a location of its own.
    Nothing is opened or validated.

    Args:
        root: Library root (missing or None yields nothing)

    Returns:
        Absolute artefact paths in a deterministic order

    Raises:
        ScanFailedError: If a directory cannot be listed
    """
    if root is None:
        return []

    root_path = Path(os.path.abspath(root))
    if not root_path.exists():
        logger.debug(f"Library root does not exist: {root_path}")
        return []

    with log_duration("scan_artifacts", logger, root=str(root_path)):
        locations: List[Path] = []
        _collect(root_path, locations, frozenset())

    logger.debug(f"Found {len(locations)} artefacts under {root_path}")
    return locations


def _collect(path: Path, locations: List[Path], ancestors: FrozenSet[Path]) -> None:
    """Walk one path, appending artefact locations."""
    if path.is_dir():
        if path.name == CLASSES_DIR:
            locations.append(path)
            return

        # A symlink pointing back up the tree would never terminate
        real = path.resolve()
        if real in ancestors:
            logger.warning(f"Skipping directory cycle at {path}")
            return
        ancestors = ancestors | {real}

        try:
            children = sorted(path.iterdir())
        except OSError as e:
            raise ScanFailedError(f"Cannot list {path}: {e}") from e

        for child in children:
            _collect(child, locations, ancestors)
        return

    if path.is_file():
        locations.append(path)

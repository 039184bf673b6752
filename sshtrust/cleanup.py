"""Removal of local scratch artifacts."""

import logging
import os
from typing import Iterable, List, Optional


def cleanup(paths: Iterable[str], logger: Optional[logging.Logger] = None,
            directory: Optional[str] = None) -> List[str]:
    """
    Delete local scratch files, best effort.

    Args:
        paths: Files created during the run
        logger: Logger for failures, defaults to this module's logger
        directory: Run directory to remove once its files are gone

    Returns:
        Paths that could not be removed
    """
    logger = logger or logging.getLogger(__name__)
    failed = []

    for path in sorted(set(paths)):
        try:
            os.remove(path)
            logger.debug(f"Removed {path}")
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Could not remove scratch file {path}: {e}")
            failed.append(path)

    if directory:
        try:
            os.rmdir(directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove scratch directory {directory}: {e}")
            failed.append(directory)

    return failed

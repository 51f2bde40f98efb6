import logging
import os
from pathlib import Path

from forkspace.models import Project

logger = logging.getLogger(__name__)


def validate_path(path: str | None) -> bool:
    """Check that `path` names an existing, accessible directory.

    Never raises: every failure mode (empty path, missing, file, dangling
    symlink, permission or stat error) collapses to False. Results are not
    cached because other tools may delete the directory between calls.
    """
    if not path or not isinstance(path, str):
        logger.debug("No project path provided")
        return False
    try:
        target = Path(path)
        if not target.exists():
            logger.debug("Path does not exist", extra={"path": path})
            return False
        if not target.is_dir():
            logger.debug("Path is not a directory", extra={"path": path})
            return False
        if not os.access(target, os.R_OK | os.X_OK):
            logger.debug("Path is not accessible", extra={"path": path})
            return False
    except (OSError, ValueError):
        logger.debug("Path validation failed", exc_info=True, extra={"path": path})
        return False
    return True


def validate_project_path(project: Project | None) -> bool:
    """Return True when the project's backing directory exists and is a directory."""
    if project is None:
        return False
    return validate_path(getattr(project, "path", None))

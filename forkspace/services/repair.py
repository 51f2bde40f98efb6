"""Recovery choices for a project whose directory failed validation.

An operation that needs an active project raises ProjectPathInvalidError
instead of continuing silently. The caller wraps the project in a
PathRepair and offers the user three choices: locate the directory again,
remove the project, or dismiss.
"""

import logging

from forkspace.errors import ForkspaceError
from forkspace.models import Project
from forkspace.services.registry import ProjectRegistry
from forkspace.services.validation import validate_path

logger = logging.getLogger(__name__)


class RepairClosedError(ForkspaceError):
    """Raised when a choice is made after the repair was already resolved."""


class PathRepair:
    def __init__(self, registry: ProjectRegistry, project: Project) -> None:
        self._registry = registry
        self.project = project
        self.is_resolved = False

    def _check_open(self) -> None:
        if self.is_resolved:
            raise RepairClosedError(f"Repair for {self.project.name} is already resolved")

    def relocate(self, new_path: str) -> bool:
        """Point the project at `new_path` and make it current.

        Returns False, leaving the registry untouched and the repair open,
        when `new_path` does not validate.
        """
        self._check_open()
        if not validate_path(new_path):
            logger.info("Rejected relocation target", extra={"project_id": self.project.id, "path": new_path})
            return False
        self.project = self._registry.update_project_path(self.project.id, new_path)
        self._registry.open_project(self.project.id)
        self.is_resolved = True
        return True

    def remove(self) -> None:
        """Drop the project from the registry and clear it as current."""
        self._check_open()
        self._registry.remove_project(self.project.id)
        self.is_resolved = True

    def dismiss(self) -> None:
        """Clear the project as current, keeping it registered for a later repair."""
        self._check_open()
        if self._registry.state.current_project_id == self.project.id:
            self._registry.set_current_project(None)
        self.is_resolved = True

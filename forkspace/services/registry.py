"""Client-held registry of known projects.

Owns the active project list, the in-app trash, the visit history and the
current project. Every mutation goes through a `ProjectRegistry` method,
which computes the new state on a copy, flushes it to disk and only then
swaps it into memory, so a failed write leaves both disk and memory as they
were.

A project id lives in at most one of the active and trashed lists.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from send2trash import send2trash

from forkspace.constants import REGISTRY_FILE, STATE_DIR
from forkspace.errors import ExternalToolError, FacilityUnavailableError, InvalidPathError, NotFoundError
from forkspace.models import Project, RegistryState, TrashedProject
from forkspace.services.state import load_model, save_model
from forkspace.services.validation import validate_path, validate_project_path

logger = logging.getLogger(__name__)

TrashFacility = Callable[[str], None]


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class ProjectPathInvalidError(InvalidPathError):
    """The project's directory is missing or not a directory.

    Callers resolve this through `forkspace.services.repair.PathRepair`.
    """

    def __init__(self, project: Project, message: str | None = None) -> None:
        self.project = project
        super().__init__(message or f"Project path not found: {project.path}")


class TrashUnavailableError(FacilityUnavailableError):
    pass


class TrashOperationError(ExternalToolError):
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProjectRegistry:
    """Owned store for projects, trash and visit history."""

    def __init__(
        self,
        path: Path,
        state: RegistryState | None = None,
        trash_facility: TrashFacility | None = send2trash,
    ) -> None:
        self.path = path
        self._state = state or RegistryState()
        self._trash_facility = trash_facility
        self._trash_lock = threading.Lock()
        self._closed = False

    @classmethod
    def load(
        cls,
        state_dir: Path | None = None,
        trash_facility: TrashFacility | None = send2trash,
    ) -> "ProjectRegistry":
        path = (state_dir or STATE_DIR) / REGISTRY_FILE
        state = load_model(path, RegistryState, RegistryState())
        return cls(path, state, trash_facility=trash_facility)

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "ProjectRegistry":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def state(self) -> RegistryState:
        """Read-only view. Mutating the returned object bypasses persistence."""
        return self._state

    @property
    def projects(self) -> list[Project]:
        return list(self._state.projects)

    @property
    def trashed_projects(self) -> list[TrashedProject]:
        return list(self._state.trashed_projects)

    @property
    def current_project(self) -> Project | None:
        return self._state.current_project

    @contextmanager
    def _mutate(self) -> Iterator[RegistryState]:
        if self._closed:
            raise RuntimeError("Registry is closed")
        draft = self._state.model_copy(deep=True)
        yield draft
        save_model(self.path, draft)
        self._state = draft

    def get_project(self, project_id: str) -> Project:
        project = self._state.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def get_trashed_project(self, project_id: str) -> TrashedProject:
        project = self._state.get_trashed(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    def add_project(self, path: str, name: str | None = None) -> Project:
        """Register a project directory. Re-adding a known path returns the existing record."""
        existing = self._state.find_by_path(path)
        if existing:
            return existing
        if not validate_path(path):
            raise InvalidPathError(f"Not a directory: {path}")
        project = Project(name=name or Path(path).name, path=path)
        with self._mutate() as draft:
            draft.projects.append(project)
        logger.info("Added project", extra={"project_id": project.id, "path": path})
        return project

    def open_project(self, project_id: str) -> Project:
        """Make a project current and record the visit at the front of history.

        Raises ProjectPathInvalidError when the directory fails validation;
        nothing is changed in that case.
        """
        project = self.get_project(project_id)
        if not validate_project_path(project):
            raise ProjectPathInvalidError(project)
        with self._mutate() as draft:
            opened = draft.get_project(project_id)
            opened.last_opened = _now()
            draft.history = [project_id] + [h for h in draft.history if h != project_id]
            draft.history_index = 0
            draft.current_project_id = project_id
        return self._state.get_project(project_id)

    def set_current_project(self, project_id: str | None) -> None:
        if project_id is not None:
            self.get_project(project_id)
        with self._mutate() as draft:
            draft.current_project_id = project_id

    def switch_for_cycling(self, project: Project, valid_history: list[str], index: int) -> None:
        """Make `project` current without reordering history."""
        self.get_project(project.id)
        with self._mutate() as draft:
            draft.current_project_id = project.id
            draft.history = list(valid_history)
            draft.history_index = index

    def update_project_path(self, project_id: str, new_path: str) -> Project:
        self.get_project(project_id)
        with self._mutate() as draft:
            project = draft.get_project(project_id)
            project.path = new_path
            project.last_opened = _now()
        logger.info("Updated project path", extra={"project_id": project_id, "path": new_path})
        return self._state.get_project(project_id)

    def remove_project(self, project_id: str) -> None:
        """Drop an active project outright. History entries are left for lazy filtering."""
        self.get_project(project_id)
        with self._mutate() as draft:
            draft.projects = [p for p in draft.projects if p.id != project_id]
            if draft.current_project_id == project_id:
                draft.current_project_id = None
        logger.info("Removed project", extra={"project_id": project_id})

    def trash_project(self, project_id: str) -> TrashedProject:
        project = self.get_project(project_id)
        trashed = TrashedProject.from_project(project)
        with self._mutate() as draft:
            draft.projects = [p for p in draft.projects if p.id != project_id]
            draft.trashed_projects = [trashed] + [t for t in draft.trashed_projects if t.id != project_id]
            if draft.current_project_id == project_id:
                draft.current_project_id = None
        logger.info("Moved project to trash", extra={"project_id": project_id})
        return trashed

    def restore_trashed_project(self, project_id: str) -> Project:
        """Move a trashed project back to the active list.

        Refused with ProjectPathInvalidError while the directory is missing;
        the caller should relocate or permanently delete instead. History
        and the current project are not touched.
        """
        trashed = self.get_trashed_project(project_id)
        if not validate_project_path(trashed):
            raise ProjectPathInvalidError(
                trashed,
                "The project directory no longer exists. Remove it from the trash "
                "and re-add the project from its new location.",
            )
        restored = trashed.to_project()
        with self._mutate() as draft:
            draft.trashed_projects = [t for t in draft.trashed_projects if t.id != project_id]
            draft.projects = [p for p in draft.projects if p.id != project_id] + [restored]
        logger.info("Restored project", extra={"project_id": project_id})
        return restored

    def delete_trashed_project(self, project_id: str) -> None:
        """Permanently forget a trashed project. The directory is left alone."""
        self.get_trashed_project(project_id)
        with self._mutate() as draft:
            draft.trashed_projects = [t for t in draft.trashed_projects if t.id != project_id]

    def delete_trashed_project_from_disk(self, project: TrashedProject) -> bool:
        """Send the project's directory to the system trash, then forget the record.

        Returns False without doing anything if another trash operation is in
        flight. Raises TrashUnavailableError when no system trash facility is
        configured and TrashOperationError when the facility fails; neither
        case changes registry state.
        """
        if not self._trash_lock.acquire(blocking=False):
            logger.warning("Trash operation already in progress", extra={"project_id": project.id})
            return False
        try:
            self.get_trashed_project(project.id)
            if self._trash_facility is None:
                raise TrashUnavailableError("System trash is not available in this environment.")
            try:
                self._trash_facility(project.path)
            except OSError as e:
                raise TrashOperationError(f"Failed to delete project folder: {e}") from e
            with self._mutate() as draft:
                draft.trashed_projects = [t for t in draft.trashed_projects if t.id != project.id]
            logger.info("Project folder sent to system trash", extra={"project_id": project.id, "path": project.path})
            return True
        finally:
            self._trash_lock.release()

    def empty_trash(self) -> bool:
        """Forget every trashed project without touching any directory.

        All-or-nothing: a storage error leaves the trash as it was. Returns
        False if another trash operation is in flight.
        """
        if not self._trash_lock.acquire(blocking=False):
            logger.warning("Trash operation already in progress")
            return False
        try:
            if not self._state.trashed_projects:
                return True
            count = len(self._state.trashed_projects)
            with self._mutate() as draft:
                draft.trashed_projects = []
            logger.info("Emptied trash", extra={"count": count})
            return True
        finally:
            self._trash_lock.release()

from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Project(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str
    path: str
    last_opened: str | None = None


class TrashedProject(Project):
    trashed_at: str = Field(default_factory=lambda: _now())

    def to_project(self) -> Project:
        return Project(id=self.id, name=self.name, path=self.path, last_opened=self.last_opened)

    @classmethod
    def from_project(cls, project: Project) -> "TrashedProject":
        return cls(**project.model_dump())


class TrackedBranch(BaseModel):
    model_config = ConfigDict(extra="ignore")

    project_path: str
    branch_name: str
    created_at: str = Field(default_factory=lambda: _now())


class BranchLedger(BaseModel):
    model_config = ConfigDict(extra="ignore")

    project_path: str
    branches: list[TrackedBranch] = Field(default_factory=list)

    def get(self, branch_name: str) -> TrackedBranch | None:
        for b in self.branches:
            if b.branch_name == branch_name:
                return b
        return None


class WorktreeResult(BaseModel):
    """A worktree as reported to the caller. Never persisted."""

    path: str
    branch: str
    is_new: bool = False


class RegistryState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    projects: list[Project] = Field(default_factory=list)
    trashed_projects: list[TrashedProject] = Field(default_factory=list)
    history: list[str] = Field(default_factory=list)
    history_index: int = 0
    current_project_id: str | None = None

    def get_project(self, project_id: str) -> Project | None:
        for p in self.projects:
            if p.id == project_id:
                return p
        return None

    def get_trashed(self, project_id: str) -> TrashedProject | None:
        for p in self.trashed_projects:
            if p.id == project_id:
                return p
        return None

    def find_by_path(self, path: str) -> Project | None:
        for p in self.projects:
            if p.path == path:
                return p
        return None

    @property
    def current_project(self) -> Project | None:
        if self.current_project_id is None:
            return None
        return self.get_project(self.current_project_id)

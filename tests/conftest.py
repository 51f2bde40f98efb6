from pathlib import Path

import pytest

from forkspace.config import ResolvedConfig
from forkspace.models import Project
from forkspace.services.registry import ProjectRegistry


@pytest.fixture()
def fake_config(tmp_path: Path) -> ResolvedConfig:
    state_dir = tmp_path / "fs-state"
    state_dir.mkdir()
    return ResolvedConfig(
        worktrees_dir_name=".worktrees",
        base_branch="HEAD",
        git_timeout=5,
        state_dir=state_dir,
        log_level="WARNING",
    )


@pytest.fixture()
def registry(fake_config: ResolvedConfig) -> ProjectRegistry:
    """Registry backed by a temp state dir with no system trash facility."""
    return ProjectRegistry.load(fake_config.state_dir, trash_facility=None)


@pytest.fixture()
def make_project(tmp_path: Path):
    """Build a Project whose directory exists unless `exists=False`."""

    def _make(name: str, exists: bool = True) -> Project:
        path = tmp_path / "projects" / name
        if exists:
            path.mkdir(parents=True)
        return Project(id=name, name=name, path=str(path))

    return _make

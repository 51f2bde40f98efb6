import pytest

from forkspace.models import BranchLedger, Project, RegistryState, TrackedBranch, TrashedProject


class TestProject:
    def test_defaults_generate_unique_ids(self):
        p1 = Project(name="a", path="/a")
        p2 = Project(name="b", path="/b")
        assert p1.id != p2.id
        assert len(p1.id) == 12

    def test_trash_round_trip_keeps_identity(self):
        project = Project(id="abc", name="a", path="/a", last_opened="2026-01-01T00:00:00+00:00")
        trashed = TrashedProject.from_project(project)
        assert trashed.trashed_at
        assert trashed.to_project() == project


class TestRegistryState:
    @pytest.mark.parametrize("project_id,expected_found", [
        ("a", True),
        ("gone", False),
    ])
    def test_get_project(self, project_id, expected_found):
        p = Project(id="a", name="a", path="/a")
        state = RegistryState(projects=[p])
        assert (state.get_project(project_id) is p) == expected_found

    def test_current_project_ignores_stale_id(self):
        state = RegistryState(projects=[Project(id="a", name="a", path="/a")], current_project_id="gone")
        assert state.current_project is None


def test_ledger_get():
    ledger = BranchLedger(
        project_path="/repo",
        branches=[TrackedBranch(project_path="/repo", branch_name="feat")],
    )
    assert ledger.get("feat").branch_name == "feat"
    assert ledger.get("other") is None

import threading

from forkspace.services import state
from forkspace.services.branches import _ledger_file_for, list_tracked_branches, track_branch, untrack_branch


def test_track_is_idempotent(fake_config):
    first = track_branch("/repo", "feature/x", fake_config)
    second = track_branch("/repo", "feature/x", fake_config)
    assert first == second
    assert len(list_tracked_branches("/repo", fake_config)) == 1


def test_ledger_is_per_repository(fake_config):
    track_branch("/repo-a", "feat", fake_config)
    assert list_tracked_branches("/repo-b", fake_config) == []
    assert _ledger_file_for("/repo-a", fake_config) != _ledger_file_for("/repo-b", fake_config)


def test_trailing_slash_maps_to_same_ledger(fake_config):
    track_branch("/repo/", "feat", fake_config)
    assert [b.branch_name for b in list_tracked_branches("/repo", fake_config)] == ["feat"]


def test_list_newest_first(fake_config, monkeypatch):
    stamps = iter(["2026-01-01T00:00:00+00:00", "2026-02-01T00:00:00+00:00", "2026-03-01T00:00:00+00:00"])
    monkeypatch.setattr("forkspace.models._now", lambda: next(stamps))
    for name in ("old", "mid", "new"):
        track_branch("/repo", name, fake_config)
    assert [b.branch_name for b in list_tracked_branches("/repo", fake_config)] == ["new", "mid", "old"]


def test_same_timestamp_latest_insert_first(fake_config, monkeypatch):
    monkeypatch.setattr("forkspace.models._now", lambda: "2026-01-01T00:00:00+00:00")
    track_branch("/repo", "a", fake_config)
    track_branch("/repo", "b", fake_config)
    assert [b.branch_name for b in list_tracked_branches("/repo", fake_config)] == ["b", "a"]


def test_survives_reload(fake_config):
    track_branch("/repo", "feat", fake_config)
    ledger_file = _ledger_file_for("/repo", fake_config)
    assert ledger_file.exists()
    assert list_tracked_branches("/repo", fake_config)[0].project_path == "/repo"


def test_untrack_only_removes_named_branch(fake_config):
    track_branch("/repo", "a", fake_config)
    track_branch("/repo", "b", fake_config)
    assert untrack_branch("/repo", "a", fake_config) is True
    assert untrack_branch("/repo", "a", fake_config) is False
    assert [b.branch_name for b in list_tracked_branches("/repo", fake_config)] == ["b"]


def test_concurrent_tracks_keep_every_record(fake_config):
    names = [f"feat-{i}" for i in range(8)]
    barrier = threading.Barrier(len(names))

    def worker(name):
        barrier.wait()
        track_branch("/repo", name, fake_config)

    threads = [threading.Thread(target=worker, args=(n,)) for n in names]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(b.branch_name for b in list_tracked_branches("/repo", fake_config)) == sorted(names)


def test_track_holds_lock_across_read_and_write(fake_config, monkeypatch):
    """A writer that lands between read and write must not be overwritten."""
    track_branch("/repo", "a", fake_config)
    real_parse = state._parse
    entered = threading.Event()
    release = threading.Event()

    def slow_parse(*args):
        doc = real_parse(*args)
        if threading.current_thread().name == "first":
            entered.set()
            release.wait(timeout=5)
        return doc

    monkeypatch.setattr(state, "_parse", slow_parse)
    first = threading.Thread(target=track_branch, args=("/repo", "b", fake_config), name="first")
    second = threading.Thread(target=track_branch, args=("/repo", "c", fake_config), name="second")
    first.start()
    assert entered.wait(timeout=5)
    second.start()
    release.set()
    first.join()
    second.join()

    assert sorted(b.branch_name for b in list_tracked_branches("/repo", fake_config)) == ["a", "b", "c"]


def test_untrack_unknown_branch_leaves_file_untouched(fake_config):
    track_branch("/repo", "a", fake_config)
    ledger_file = _ledger_file_for("/repo", fake_config)
    before = ledger_file.read_text()
    assert untrack_branch("/repo", "nope", fake_config) is False
    assert ledger_file.read_text() == before

"""Durable ledger of branches created through forkspace.

Records outlive the worktree directories they were created for: a branch is
only dropped from the ledger by an explicit `untrack_branch` call.
"""

import logging
from pathlib import Path

from forkspace.config import ResolvedConfig, default_config
from forkspace.models import BranchLedger, TrackedBranch
from forkspace.services.state import load_model, update_model

logger = logging.getLogger(__name__)


def _ledger_file_for(repo_path: Path | str, config: ResolvedConfig) -> Path:
    """Per-repo ledger file keyed by repo path hash."""
    return config.state_dir / f"branches-{config.state_hash(Path(repo_path))}.json"


def _empty_ledger(repo_path: Path | str) -> BranchLedger:
    return BranchLedger(project_path=str(Path(repo_path)))


def _load_ledger(repo_path: Path | str, config: ResolvedConfig) -> BranchLedger:
    return load_model(_ledger_file_for(repo_path, config), BranchLedger, _empty_ledger(repo_path))


def track_branch(
    repo_path: Path | str, branch_name: str, config: ResolvedConfig | None = None,
) -> TrackedBranch:
    """Record `branch_name` for the repository. Idempotent per (repo, branch).

    The read-append-write runs under one exclusive lock.
    """
    config = config or default_config()

    def _append(ledger: BranchLedger) -> tuple[TrackedBranch, bool]:
        existing = ledger.get(branch_name)
        if existing:
            return existing, False
        record = TrackedBranch(project_path=str(Path(repo_path)), branch_name=branch_name)
        ledger.branches.append(record)
        return record, True

    record, added = update_model(
        _ledger_file_for(repo_path, config), BranchLedger, _empty_ledger(repo_path), _append,
    )
    if added:
        logger.info("Tracking branch", extra={"repo": str(repo_path), "branch": branch_name})
    return record


def list_tracked_branches(
    repo_path: Path | str, config: ResolvedConfig | None = None,
) -> list[TrackedBranch]:
    """All tracked branches for the repository, newest first.

    Worktree presence is not consulted; callers cross-reference it themselves.
    """
    config = config or default_config()
    ledger = _load_ledger(repo_path, config)
    # Timestamp ties fall back to insertion order, latest first
    indexed = list(enumerate(ledger.branches))
    indexed.sort(key=lambda pair: (pair[1].created_at, pair[0]), reverse=True)
    return [b for _, b in indexed]


def untrack_branch(
    repo_path: Path | str, branch_name: str, config: ResolvedConfig | None = None,
) -> bool:
    """Explicitly drop a branch record. Returns True if one was removed."""
    config = config or default_config()

    def _drop(ledger: BranchLedger) -> bool:
        remaining = [b for b in ledger.branches if b.branch_name != branch_name]
        if len(remaining) == len(ledger.branches):
            return False
        ledger.branches = remaining
        return True

    removed = update_model(
        _ledger_file_for(repo_path, config), BranchLedger, _empty_ledger(repo_path), _drop,
    )
    if not removed:
        return False
    logger.info("Untracked branch", extra={"repo": str(repo_path), "branch": branch_name})
    return True

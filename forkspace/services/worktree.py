import enum
import logging
import re
import shutil
from pathlib import Path

import git as gitpython

from forkspace.config import ResolvedConfig, default_config
from forkspace.errors import ConflictError, ExternalToolError, ForkspaceError, NotFoundError
from forkspace.models import WorktreeResult
from forkspace.services.branches import track_branch

logger = logging.getLogger(__name__)

_UNSAFE_DIR_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class WorktreeError(ForkspaceError):
    """Base exception for worktree operations."""


class NotARepositoryError(WorktreeError):
    """Raised when the path is not inside a git working tree."""

    def __init__(self, path: Path | str) -> None:
        self.path = str(path)
        super().__init__(f"Not a git repository: {path}")


class WorktreeAlreadyExistsError(WorktreeError, ConflictError):
    """Raised when the target worktree directory is already present."""

    def __init__(self, branch: str, path: Path | str) -> None:
        self.branch = branch
        self.path = normalize_path(path)
        super().__init__(f'Worktree "{branch}" already exists')


class WorktreeCommandError(WorktreeError, ExternalToolError):
    """Raised when a git worktree command fails."""


class WorktreeCreationError(WorktreeCommandError):
    """Raised when `git worktree add` fails or times out."""


class WorktreeNotFoundError(WorktreeError, NotFoundError):
    """Raised when no worktree directory matches the branch."""


class BranchProbe(enum.Enum):
    EXISTS = "exists"
    ABSENT = "absent"
    TOOL_ERROR = "tool_error"


def normalize_path(path: Path | str) -> str:
    """Render every separator as `/` so joined paths and git-reported paths compare equal."""
    return str(path).replace("\\", "/")


def sanitize_worktree_name(branch: str) -> str:
    """Project a branch name onto a directory-safe identifier."""
    return _UNSAFE_DIR_CHARS.sub("-", branch)


def worktree_path_for(repo_path: Path | str, branch: str, config: ResolvedConfig | None = None) -> Path:
    config = config or default_config()
    return Path(repo_path) / config.worktrees_dir_name / sanitize_worktree_name(branch)


def _open_repo(repo_path: Path | str, timeout: int) -> gitpython.Repo:
    """Open the repository after probing that `repo_path` is inside a work tree."""
    try:
        repo = gitpython.Repo(repo_path, search_parent_directories=True)
        inside = repo.git.rev_parse("--is-inside-work-tree", kill_after_timeout=timeout)
    except (gitpython.InvalidGitRepositoryError, gitpython.NoSuchPathError, gitpython.GitCommandError) as e:
        raise NotARepositoryError(repo_path) from e
    if str(inside).strip() != "true":
        raise NotARepositoryError(repo_path)
    return repo


def probe_branch(repo: gitpython.Repo, branch: str, timeout: int = 0) -> BranchProbe:
    """Resolve `branch` as a local branch ref.

    Absence is an expected outcome, not an error. Exit status 1 from
    `rev-parse --verify --quiet` means the ref does not exist; any other
    failure is reported as TOOL_ERROR so callers can tell the two apart.
    """
    try:
        repo.git.rev_parse("--verify", "--quiet", f"refs/heads/{branch}", kill_after_timeout=timeout or None)
        return BranchProbe.EXISTS
    except gitpython.GitCommandError as e:
        if e.status == 1:
            return BranchProbe.ABSENT
        logger.warning(
            "Branch probe failed",
            extra={"branch": branch, "status": e.status, "stderr": str(e.stderr or "").strip()},
        )
        return BranchProbe.TOOL_ERROR


def create_worktree(
    repo_path: Path | str,
    branch_name: str,
    base_branch: str | None = None,
    *,
    config: ResolvedConfig | None = None,
) -> WorktreeResult:
    """Create `<repo>/.worktrees/<sanitized-branch>` bound to `branch_name`.

    Steps run strictly in order because the branch probe decides which
    `git worktree add` variant is issued:

    1. probe that `repo_path` is a git working tree
    2. create the worktrees container
    3. refuse an existing target directory
    4. probe the branch
    5. add the worktree, creating the branch in the same git call if needed
    6. record the branch in the ledger

    Raises NotARepositoryError, WorktreeAlreadyExistsError or
    WorktreeCreationError.
    """
    if not repo_path or not branch_name:
        raise ValueError("repo_path and branch_name are required")

    config = config or default_config()
    timeout = config.git_timeout
    git_repo = _open_repo(repo_path, timeout)

    wt_path = worktree_path_for(repo_path, branch_name, config)
    try:
        wt_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WorktreeCreationError(f"Cannot create worktrees directory {wt_path.parent}: {e}") from e

    if wt_path.exists():
        raise WorktreeAlreadyExistsError(branch_name, wt_path)

    probe = probe_branch(git_repo, branch_name, timeout)
    branch_exists = probe is BranchProbe.EXISTS

    if branch_exists:
        args = ["add", str(wt_path), branch_name]
    else:
        args = ["add", "-b", branch_name, str(wt_path), base_branch or config.base_branch]
    try:
        git_repo.git.worktree(*args, kill_after_timeout=timeout)
    except gitpython.GitCommandError as e:
        raise WorktreeCreationError(f"Failed to create worktree: {str(e.stderr or e).strip()}") from e

    # Configuration is always read from the primary project path, never linked in.
    try:
        track_branch(repo_path, branch_name, config)
    except OSError as e:
        raise WorktreeCreationError(f"Worktree created but branch could not be tracked: {e}") from e

    logger.info(
        "Created worktree",
        extra={"repo": str(repo_path), "branch": branch_name, "path": str(wt_path), "is_new": not branch_exists},
    )
    return WorktreeResult(path=normalize_path(wt_path), branch=branch_name, is_new=not branch_exists)


def remove_worktree(
    repo_path: Path | str,
    branch_name: str,
    force: bool = False,
    *,
    config: ResolvedConfig | None = None,
) -> None:
    """Remove the worktree for `branch_name`. The branch stays in the ledger."""
    config = config or default_config()
    timeout = config.git_timeout
    git_repo = _open_repo(repo_path, timeout)
    wt_path = worktree_path_for(repo_path, branch_name, config)
    if not wt_path.exists():
        raise WorktreeNotFoundError(f"Worktree not found: {normalize_path(wt_path)}")

    try:
        args = ["remove"]
        if force:
            args.append("--force")
        args.append(str(wt_path))
        git_repo.git.worktree(*args, kill_after_timeout=timeout)
    except gitpython.GitCommandError as e:
        stderr = str(e.stderr or e)
        if not force and "contains modified or untracked files" in stderr:
            raise WorktreeCommandError(
                f"Worktree has uncommitted changes. Use --force to remove anyway.\n{stderr}"
            ) from e
        if not force:
            raise WorktreeCommandError(f"Failed to remove worktree: {stderr}") from e
        # force=True: git failed, clean up directory manually
        if wt_path.exists():
            shutil.rmtree(wt_path)

    try:
        git_repo.git.worktree("prune", kill_after_timeout=timeout)
    except gitpython.GitCommandError:
        logger.debug("git worktree prune failed", exc_info=True, extra={"repo": str(repo_path)})


def list_worktrees(repo_path: Path | str, config: ResolvedConfig | None = None) -> list[WorktreeResult]:
    """List linked worktrees reported by `git worktree list --porcelain`.

    The main checkout is excluded. Returns an empty list when git fails.
    """
    config = config or default_config()
    try:
        repo = gitpython.Repo(repo_path, search_parent_directories=True)
        output = repo.git.worktree("list", "--porcelain", kill_after_timeout=config.git_timeout)
        main_root = normalize_path(repo.working_dir)
    except (gitpython.GitCommandError, gitpython.InvalidGitRepositoryError, gitpython.NoSuchPathError):
        return []

    found: list[WorktreeResult] = []
    current_path = ""
    current_branch = ""
    for line in output.splitlines():
        if line.startswith("worktree "):
            current_path = line[len("worktree "):]
            current_branch = ""
        elif line.startswith("branch "):
            current_branch = line[len("branch refs/heads/"):]
        elif line == "detached":
            current_branch = "(detached)"
        elif line == "" and current_path:
            _append_entry(current_path, current_branch, main_root, found)
            current_path = ""

    # Handle last entry if output doesn't end with blank line
    if current_path:
        _append_entry(current_path, current_branch, main_root, found)

    return found


def _append_entry(path: str, branch: str, main_root: str, out: list[WorktreeResult]) -> None:
    normalized = normalize_path(path)
    if normalized == main_root:
        return
    out.append(WorktreeResult(path=normalized, branch=branch or "(unknown)"))

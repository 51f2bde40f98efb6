from pathlib import Path

STATE_DIR = Path.home() / ".config" / "forkspace"

WORKTREES_DIR_NAME = ".worktrees"
GIT_TIMEOUT_S = 30
DEFAULT_BASE_REF = "HEAD"

REGISTRY_FILE = "registry.json"

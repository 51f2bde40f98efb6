"""Configuration loading with auto-detection fallbacks.

Reads `.forkspace.toml` (project-level) and `~/.config/forkspace/config.toml`
(global), merges them, and fills missing values with built-in defaults.
"""

import hashlib
import tomllib
from pathlib import Path

import git as gitpython
from pydantic import BaseModel

from forkspace.constants import DEFAULT_BASE_REF, GIT_TIMEOUT_S, STATE_DIR, WORKTREES_DIR_NAME

PROJECT_CONFIG_NAME = ".forkspace.toml"
SECTIONS = ("worktree", "git", "state", "logging")


class WorktreeConfig(BaseModel):
    dir_name: str = ""


class GitConfig(BaseModel):
    base_branch: str = ""
    timeout: int = 0


class StateConfig(BaseModel):
    dir: str = ""


class LoggingConfig(BaseModel):
    level: str = ""


class FSConfig(BaseModel):
    worktree: WorktreeConfig = WorktreeConfig()
    git: GitConfig = GitConfig()
    state: StateConfig = StateConfig()
    logging: LoggingConfig = LoggingConfig()


class ResolvedConfig(BaseModel):
    """Flat config with all values guaranteed filled."""

    worktrees_dir_name: str
    base_branch: str
    git_timeout: int
    state_dir: Path
    log_level: str

    def state_hash(self, repo_path: Path | str) -> str:
        """Short hash of a repository path for per-repo ledger file naming."""
        return hashlib.sha256(str(repo_path).encode()).hexdigest()[:12]


def default_config() -> ResolvedConfig:
    return resolve(FSConfig())


def detect_repo_root(cwd: Path | str | None = None) -> Path:
    try:
        repo = gitpython.Repo(cwd or ".", search_parent_directories=True)
        return Path(repo.working_dir)
    except (gitpython.InvalidGitRepositoryError, gitpython.NoSuchPathError):
        raise RuntimeError("Not inside a git repository")


def save_project_config(repo_root: Path, config: FSConfig) -> Path:
    """Save project-level .forkspace.toml. Returns the path written."""
    path = repo_root / PROJECT_CONFIG_NAME
    lines: list[str] = []
    for section_name in SECTIONS:
        section = getattr(config, section_name)
        section_lines: list[str] = []
        for field_name, field_info in type(section).model_fields.items():
            value = getattr(section, field_name)
            if value != field_info.default:
                section_lines.append(f"{field_name} = {_toml_value(value)}")
        if section_lines:
            lines.append(f"[{section_name}]")
            lines.extend(section_lines)
            lines.append("")
    path.write_text("\n".join(lines) + "\n" if lines else "")
    return path


def _toml_value(value: object) -> str:
    """Format a Python value as TOML."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return f'"{_escape_toml_str(value)}"'
    return str(value)


def _escape_toml_str(s: str) -> str:
    return s.replace("\\", "\\\\").replace('"', '\\"')


def load_toml(path: Path) -> FSConfig:
    if not path.exists():
        return FSConfig()
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return FSConfig.model_validate(data)


def _merge_configs(project: FSConfig, global_: FSConfig) -> FSConfig:
    """Merge project over global. Non-default project values win."""
    merged = FSConfig()
    for section in SECTIONS:
        proj_section = getattr(project, section)
        glob_section = getattr(global_, section)
        merged_section = getattr(merged, section)
        for field_name in type(proj_section).model_fields:
            proj_val = getattr(proj_section, field_name)
            glob_val = getattr(glob_section, field_name)
            default_val = type(merged_section).model_fields[field_name].default
            if proj_val != default_val:
                setattr(merged_section, field_name, proj_val)
            elif glob_val != default_val:
                setattr(merged_section, field_name, glob_val)
    return merged


def resolve(merged: FSConfig) -> ResolvedConfig:
    return ResolvedConfig(
        worktrees_dir_name=merged.worktree.dir_name or WORKTREES_DIR_NAME,
        base_branch=merged.git.base_branch or DEFAULT_BASE_REF,
        git_timeout=merged.git.timeout or GIT_TIMEOUT_S,
        state_dir=Path(merged.state.dir).expanduser() if merged.state.dir else STATE_DIR,
        log_level=(merged.logging.level or "WARNING").upper(),
    )


def global_config_path() -> Path:
    return Path.home() / ".config" / "forkspace" / "config.toml"


def load_config(repo_path: Path | str | None = None) -> ResolvedConfig:
    """Load and resolve configuration.

    Args:
        repo_path: Optional repository whose `.forkspace.toml` overrides the
            global file. Without it only the global file is read.
    """
    global_cfg = load_toml(global_config_path())
    project_cfg = load_toml(Path(repo_path) / PROJECT_CONFIG_NAME) if repo_path else FSConfig()
    return resolve(_merge_configs(project_cfg, global_cfg))

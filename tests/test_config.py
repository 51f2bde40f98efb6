import hashlib
from pathlib import Path
from unittest.mock import MagicMock

import git as gitpython
import pytest

from forkspace.config import (
    FSConfig,
    GitConfig,
    LoggingConfig,
    StateConfig,
    WorktreeConfig,
    _escape_toml_str,
    _merge_configs,
    _toml_value,
    default_config,
    detect_repo_root,
    load_config,
    load_toml,
    save_project_config,
)
from forkspace.constants import GIT_TIMEOUT_S, STATE_DIR


@pytest.mark.parametrize("value,expected", [
    ("hello", '"hello"'),
    (True, "true"),
    (False, "false"),
    (42, "42"),
])
def test_toml_value(value, expected):
    assert _toml_value(value) == expected


@pytest.mark.parametrize("value,expected", [
    ("a\\b", "a\\\\b"),
    ('say "hi"', 'say \\"hi\\"'),
    ("simple", "simple"),
])
def test_escape_toml_str(value, expected):
    assert _escape_toml_str(value) == expected


class TestDetectRepoRoot:
    def test_success(self, monkeypatch):
        mock_repo = MagicMock()
        mock_repo.working_dir = "/home/user/myrepo"
        monkeypatch.setattr(gitpython, "Repo", lambda *a, **kw: mock_repo)
        assert detect_repo_root() == Path("/home/user/myrepo")

    @pytest.mark.parametrize("error", [
        gitpython.InvalidGitRepositoryError("not a repo"),
        gitpython.NoSuchPathError("/missing"),
    ])
    def test_not_a_repo(self, monkeypatch, error):
        monkeypatch.setattr(gitpython, "Repo", MagicMock(side_effect=error))
        with pytest.raises(RuntimeError, match="Not inside a git repository"):
            detect_repo_root()


class TestMergeConfigs:
    def test_project_overrides_global(self):
        project = FSConfig(worktree=WorktreeConfig(dir_name=".wt"))
        global_ = FSConfig(worktree=WorktreeConfig(dir_name=".trees"))
        merged = _merge_configs(project, global_)
        assert merged.worktree.dir_name == ".wt"

    def test_global_fills_missing(self):
        merged = _merge_configs(FSConfig(), FSConfig(git=GitConfig(timeout=90)))
        assert merged.git.timeout == 90

    def test_multiple_sections(self):
        project = FSConfig(git=GitConfig(base_branch="develop"))
        global_ = FSConfig(
            state=StateConfig(dir="/var/fs"),
            logging=LoggingConfig(level="debug"),
        )
        merged = _merge_configs(project, global_)
        assert merged.git.base_branch == "develop"
        assert merged.state.dir == "/var/fs"
        assert merged.logging.level == "debug"


class TestLoadToml:
    def test_missing_file_returns_default(self, tmp_path):
        assert load_toml(tmp_path / "nonexistent.toml") == FSConfig()

    def test_valid_toml(self, tmp_path):
        toml_file = tmp_path / "config.toml"
        toml_file.write_text('[git]\nbase_branch = "main"\ntimeout = 10\n')
        result = load_toml(toml_file)
        assert result.git.base_branch == "main"
        assert result.git.timeout == 10


class TestSaveProjectConfig:
    def test_round_trip(self, tmp_path):
        config = FSConfig(worktree=WorktreeConfig(dir_name=".wt"), git=GitConfig(timeout=12))
        path = save_project_config(tmp_path, config)
        loaded = load_toml(path)
        assert loaded.worktree.dir_name == ".wt"
        assert loaded.git.timeout == 12

    def test_empty_config_writes_minimal(self, tmp_path):
        path = save_project_config(tmp_path, FSConfig())
        assert path.read_text().strip() == ""


class TestResolvedConfig:
    def test_defaults(self):
        cfg = default_config()
        assert cfg.worktrees_dir_name == ".worktrees"
        assert cfg.base_branch == "HEAD"
        assert cfg.git_timeout == GIT_TIMEOUT_S
        assert cfg.state_dir == STATE_DIR
        assert cfg.log_level == "WARNING"

    def test_state_hash_matches_sha256(self, tmp_path):
        cfg = default_config()
        expected = hashlib.sha256(str(tmp_path / "myrepo").encode()).hexdigest()[:12]
        assert cfg.state_hash(tmp_path / "myrepo") == expected
        assert cfg.state_hash(tmp_path / "other") != expected


class TestLoadConfig:
    @pytest.fixture(autouse=True)
    def _global_config(self, tmp_path, monkeypatch):
        path = tmp_path / "global.toml"
        monkeypatch.setattr("forkspace.config.global_config_path", lambda: path)
        return path

    def test_global_only(self, _global_config):
        _global_config.write_text('[logging]\nlevel = "info"\n[state]\ndir = "~/fs-state"\n')
        cfg = load_config()
        assert cfg.log_level == "INFO"
        assert cfg.state_dir == Path("~/fs-state").expanduser()

    def test_project_toml_overrides(self, tmp_path, _global_config):
        _global_config.write_text('[git]\nbase_branch = "main"\n')
        repo_root = tmp_path / "repo"
        repo_root.mkdir()
        (repo_root / ".forkspace.toml").write_text('[git]\nbase_branch = "develop"\n')
        cfg = load_config(repo_root)
        assert cfg.base_branch == "develop"

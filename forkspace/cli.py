import asyncio
import logging
from pathlib import Path

import click

from forkspace.config import PROJECT_CONFIG_NAME, SECTIONS, ResolvedConfig, detect_repo_root, load_config, load_toml, save_project_config
from forkspace.errors import ForkspaceError
from forkspace.services.branches import list_tracked_branches, untrack_branch
from forkspace.services.history import HistoryCycler
from forkspace.services.registry import ProjectPathInvalidError, ProjectRegistry
from forkspace.services.repair import PathRepair
from forkspace.services.worktree import create_worktree, list_worktrees, remove_worktree, worktree_path_for


def _fail(message: str) -> None:
    click.echo(message, err=True)
    raise SystemExit(1)


def _resolve_repo(repo: str | None) -> Path:
    try:
        return detect_repo_root(repo)
    except RuntimeError as e:
        _fail(str(e))


def _open_registry(config: ResolvedConfig) -> ProjectRegistry:
    return ProjectRegistry.load(config.state_dir)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """forkspace: parallel worktrees and a project registry for one repository."""
    config = load_config()
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, config.log_level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


# --- worktrees -------------------------------------------------------------


@cli.group()
def worktree() -> None:
    """Create, list and remove worktrees."""


@worktree.command("new")
@click.argument("branch")
@click.option("--base", "-b", default=None, help="Base branch for a new branch (defaults to HEAD)")
@click.option("--repo", "-r", default=None, help="Repository path (defaults to the current directory)")
def worktree_new(branch: str, base: str | None, repo: str | None) -> None:
    """Create a worktree for BRANCH, creating the branch if it does not exist."""
    repo_root = _resolve_repo(repo)
    config = load_config(repo_root)
    try:
        wt = create_worktree(repo_root, branch, base, config=config)
    except ForkspaceError as e:
        _fail(str(e))
    label = "new branch" if wt.is_new else "existing branch"
    click.echo(f"Created worktree: {wt.path} ({label}: {wt.branch})")


@worktree.command("list")
@click.option("--repo", "-r", default=None, help="Repository path (defaults to the current directory)")
def worktree_list(repo: str | None) -> None:
    """List linked worktrees."""
    repo_root = _resolve_repo(repo)
    worktrees = list_worktrees(repo_root, load_config(repo_root))
    if not worktrees:
        click.echo("No worktrees.")
        return
    for wt in worktrees:
        click.echo(f"{wt.branch}\t{wt.path}")


@worktree.command("rm")
@click.argument("branch")
@click.option("--force", "-f", is_flag=True, help="Force remove even with uncommitted changes")
@click.option("--repo", "-r", default=None, help="Repository path (defaults to the current directory)")
def worktree_rm(branch: str, force: bool, repo: str | None) -> None:
    """Remove the worktree for BRANCH. The branch stays tracked."""
    repo_root = _resolve_repo(repo)
    try:
        remove_worktree(repo_root, branch, force=force, config=load_config(repo_root))
    except ForkspaceError as e:
        _fail(str(e))
    click.echo(f"Removed worktree for {branch}")


@cli.command()
@click.option("--repo", "-r", default=None, help="Repository path (defaults to the current directory)")
@click.option("--untrack", default=None, metavar="BRANCH", help="Drop BRANCH from the ledger")
def branches(repo: str | None, untrack: str | None) -> None:
    """List branches created through forkspace, newest first."""
    repo_root = _resolve_repo(repo)
    config = load_config(repo_root)
    if untrack:
        if untrack_branch(repo_root, untrack, config):
            click.echo(f"Untracked {untrack}")
        else:
            _fail(f"Branch '{untrack}' is not tracked.")
        return

    tracked = list_tracked_branches(repo_root, config)
    if not tracked:
        click.echo("No tracked branches.")
        return
    for b in tracked:
        live = "worktree" if worktree_path_for(repo_root, b.branch_name, config).is_dir() else "no worktree"
        click.echo(f"{b.branch_name}\t[{live}]\t{b.created_at}")


# --- projects --------------------------------------------------------------


@cli.group()
def project() -> None:
    """Manage the project registry, trash and history."""


@project.command("add")
@click.argument("path", type=click.Path(file_okay=False, resolve_path=True))
@click.option("--name", "-n", default=None, help="Display name (defaults to the directory name)")
@click.pass_obj
def project_add(config: ResolvedConfig, path: str, name: str | None) -> None:
    """Register PATH as a project."""
    with _open_registry(config) as registry:
        try:
            p = registry.add_project(path, name)
        except ForkspaceError as e:
            _fail(str(e))
    click.echo(f"{p.id}\t{p.name}\t{p.path}")


@project.command("list")
@click.option("--trash", "show_trash", is_flag=True, help="List trashed projects instead")
@click.pass_obj
def project_list(config: ResolvedConfig, show_trash: bool) -> None:
    """List projects."""
    with _open_registry(config) as registry:
        if show_trash:
            if not registry.trashed_projects:
                click.echo("Trash is empty.")
            for t in registry.trashed_projects:
                click.echo(f"{t.id}\t{t.name}\t{t.path}\ttrashed {t.trashed_at}")
            return
        if not registry.projects:
            click.echo("No projects.")
        current_id = registry.state.current_project_id
        for p in registry.projects:
            marker = "*" if p.id == current_id else " "
            click.echo(f"{marker} {p.id}\t{p.name}\t{p.path}")


def _run_repair(registry: ProjectRegistry, err: ProjectPathInvalidError) -> None:
    """Interactive recovery for a project whose directory is gone."""
    repair = PathRepair(registry, err.project)
    click.echo(f"{err}", err=True)
    while not repair.is_resolved:
        choice = click.prompt(
            "Locate, remove or dismiss?",
            type=click.Choice(["locate", "remove", "dismiss"]),
            default="dismiss",
        )
        if choice == "locate":
            new_path = click.prompt("New path")
            if repair.relocate(str(Path(new_path).expanduser().resolve())):
                click.echo("Project path updated")
            else:
                click.echo("Invalid path: selected path does not exist or is not accessible", err=True)
        elif choice == "remove":
            repair.remove()
            click.echo(f"Project removed: {err.project.name}")
        else:
            repair.dismiss()


@project.command("open")
@click.argument("project_id")
@click.pass_obj
def project_open(config: ResolvedConfig, project_id: str) -> None:
    """Make PROJECT_ID current, offering a repair if its directory is gone."""
    with _open_registry(config) as registry:
        try:
            p = registry.open_project(project_id)
        except ProjectPathInvalidError as e:
            _run_repair(registry, e)
            return
        except ForkspaceError as e:
            _fail(str(e))
    click.echo(f"Opened {p.name} ({p.path})")


@project.command("relocate")
@click.argument("project_id")
@click.argument("path", type=click.Path(file_okay=False, resolve_path=True))
@click.pass_obj
def project_relocate(config: ResolvedConfig, project_id: str, path: str) -> None:
    """Point PROJECT_ID at a new directory."""
    with _open_registry(config) as registry:
        try:
            repair = PathRepair(registry, registry.get_project(project_id))
        except ForkspaceError as e:
            _fail(str(e))
        if not repair.relocate(path):
            _fail("Invalid path: selected path does not exist or is not accessible")
    click.echo("Project path updated")


@project.command("rm")
@click.argument("project_id")
@click.pass_obj
def project_rm(config: ResolvedConfig, project_id: str) -> None:
    """Remove PROJECT_ID from the registry without trashing it."""
    with _open_registry(config) as registry:
        try:
            registry.remove_project(project_id)
        except ForkspaceError as e:
            _fail(str(e))
    click.echo("Project removed")


@project.command("trash")
@click.argument("project_id")
@click.pass_obj
def project_trash(config: ResolvedConfig, project_id: str) -> None:
    """Move PROJECT_ID to the trash."""
    with _open_registry(config) as registry:
        try:
            t = registry.trash_project(project_id)
        except ForkspaceError as e:
            _fail(str(e))
    click.echo(f"Moved {t.name} to trash")


@project.command("restore")
@click.argument("project_id")
@click.pass_obj
def project_restore(config: ResolvedConfig, project_id: str) -> None:
    """Restore PROJECT_ID from the trash."""
    with _open_registry(config) as registry:
        try:
            registry.restore_trashed_project(project_id)
        except ForkspaceError as e:
            _fail(str(e))
    click.echo("Project restored")


@project.command("purge")
@click.argument("project_id")
@click.option("--from-disk", is_flag=True, help="Also send the project folder to the system trash")
@click.pass_obj
def project_purge(config: ResolvedConfig, project_id: str, from_disk: bool) -> None:
    """Permanently delete PROJECT_ID from the trash."""
    with _open_registry(config) as registry:
        try:
            trashed = registry.get_trashed_project(project_id)
            if not from_disk:
                registry.delete_trashed_project(project_id)
                click.echo("Project deleted")
                return
            if not click.confirm(f"Send {trashed.path} to the system trash?"):
                _fail("Aborted.")
            if not registry.delete_trashed_project_from_disk(trashed):
                _fail("Another trash operation is in progress.")
        except ForkspaceError as e:
            _fail(str(e))
    click.echo(f"Project folder sent to system trash: {trashed.path}")


@project.command("empty-trash")
@click.pass_obj
def project_empty_trash(config: ResolvedConfig) -> None:
    """Forget every trashed project. Directories are left alone."""
    with _open_registry(config) as registry:
        if not registry.empty_trash():
            _fail("Another trash operation is in progress.")
    click.echo("Trash cleared")


def _cycle(config: ResolvedConfig, forward: bool) -> None:
    with _open_registry(config) as registry:
        cycler = HistoryCycler(registry)
        target = asyncio.run(cycler.cycle_next() if forward else cycler.cycle_prev())
    if target is None:
        click.echo("No other valid project in history.")
        return
    click.echo(f"Switched to {target.name} ({target.path})")


@project.command("prev")
@click.pass_obj
def project_prev(config: ResolvedConfig) -> None:
    """Switch to the previous (older) project in history."""
    _cycle(config, forward=False)


@project.command("next")
@click.pass_obj
def project_next(config: ResolvedConfig) -> None:
    """Switch to the next (newer) project in history."""
    _cycle(config, forward=True)


# --- config ----------------------------------------------------------------


@cli.command()
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--repo", "-r", default=None, help="Repository path (defaults to the current directory)")
def config(key: str | None, value: str | None, repo: str | None) -> None:
    """View or edit project settings (.forkspace.toml).

    With no args: show current config.
    With KEY: show a specific value.
    With KEY VALUE: set a value (e.g. `forkspace config git.base_branch main`).
    """
    repo_root = _resolve_repo(repo)
    resolved = load_config(repo_root)
    project_cfg = load_toml(repo_root / PROJECT_CONFIG_NAME)

    if key is None:
        click.echo(f"Project: {repo_root}")
        click.echo(f"Config:  {repo_root / PROJECT_CONFIG_NAME}\n")
        click.echo("[worktree]")
        click.echo(f"  dir_name    = {resolved.worktrees_dir_name}")
        click.echo("\n[git]")
        click.echo(f"  base_branch = {resolved.base_branch}")
        click.echo(f"  timeout     = {resolved.git_timeout}")
        click.echo("\n[state]")
        click.echo(f"  dir         = {resolved.state_dir}")
        click.echo("\n[logging]")
        click.echo(f"  level       = {resolved.log_level}")
        return

    if "." not in key:
        _fail("Key must be section.field (e.g. git.base_branch)")

    section_name, field_name = key.split(".", 1)
    if section_name not in SECTIONS:
        _fail(f"Unknown config key: {key}")
    section = getattr(project_cfg, section_name)
    if field_name not in type(section).model_fields:
        _fail(f"Unknown config key: {key}")

    if value is None:
        click.echo(getattr(section, field_name))
        return

    field_type = type(getattr(section, field_name))
    try:
        parsed_value = field_type(value)
    except ValueError:
        _fail(f"Invalid value for {key}: {value}")
    setattr(section, field_name, parsed_value)
    path = save_project_config(repo_root, project_cfg)
    click.echo(f"Set {key} = {parsed_value}")
    click.echo(f"Saved to {path}")

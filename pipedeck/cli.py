"""
CLI interface for pipedeck.

Provides commands to inspect connector forms and to trigger and follow
background tasks (syncs, workspace builds) on the console backend.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.markup import escape
from rich.tree import Tree

from pipedeck import __version__
from pipedeck.clients import BackendClient
from pipedeck.compiler import DEFAULT_BASE_PATH, SchemaSpecCompiler
from pipedeck.config import CONFIG_FILENAME, ConfigError, PipedeckConfig, get_pipedeck_home, load_config
from pipedeck.errors import CompileError
from pipedeck.poller import FinalEntryProgress, JobLinkedProgress, JobStatusPoller
from pipedeck.schemas import FieldSpec, PollState, format_progress_line
from pipedeck.utils import console, print_error, print_info, print_success, print_warning, setup_logging
from pipedeck.workflows import (
    ConnectionSyncWorkflow,
    WorkflowResult,
    WorkspaceParams,
    WorkspaceSetupWorkflow,
)


@click.group()
@click.version_option(version=__version__, prog_name="pipedeck")
@click.pass_context
def main(ctx):
    """
    pipedeck - Console tooling for data pipeline connectors.

    Compile connector schemas into forms and follow syncs and workspace builds.
    """
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except (FileNotFoundError, ConfigError) as e:
        # init and fields work without a config; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)


def _require_config(ctx) -> PipedeckConfig:
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'pipedeck init' to create a configuration file.", err=True)
        raise SystemExit(1)

    config = ctx.obj["config"]
    setup_logging(
        config.log_level,
        config.log_format,
        Path(config.log_file).expanduser() if config.log_file else None,
    )
    return config


def _build_client(config: PipedeckConfig) -> BackendClient:
    return BackendClient(config.api_url, token=config.api_token, timeout=config.request_timeout_s)


class _ProgressPrinter:
    """Listener that echoes progress lines as they appear."""

    def __init__(self):
        self.printed = 0

    def __call__(self, state: PollState) -> None:
        lines = [format_progress_line(entry) for entry in state.progress_log]
        for line in lines[self.printed:]:
            if line:
                click.echo(line)
        self.printed = max(self.printed, len(lines))


def _report(result: WorkflowResult) -> None:
    """Print a workflow result and exit non-zero on failure."""
    if result.ok:
        print_success(result.message or "done")
        return
    for line in result.logs:
        click.echo(line, err=True)
    print_error(result.message or "failed")
    raise SystemExit(1)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize pipedeck configuration."""
    home = get_pipedeck_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / CONFIG_FILENAME
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = PipedeckConfig(api_url="http://localhost:8002", env_file=str(home / ".env")).to_dict()
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# PIPEDECK_API_TOKEN=...\n")

    click.echo(f"Initialized pipedeck config at {cfg_path}")


@main.command("fields")
@click.argument("schema_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--base-path", default=DEFAULT_BASE_PATH, show_default=True, help="Prefix for field paths")
@click.option("--json", "as_json", is_flag=True, help="Output compiled fields as JSON")
def fields_cmd(schema_file: Path, base_path: str, as_json: bool):
    """Compile a connector specification (JSON or YAML) into form fields."""
    try:
        schema = _read_schema(schema_file)
    except (ValueError, yaml.YAMLError) as e:
        print_error(f"Cannot parse {schema_file}: {e}")
        raise SystemExit(1)

    # Connector definitions wrap the schema in connectionSpecification
    if isinstance(schema, dict) and "connectionSpecification" in schema:
        schema = schema["connectionSpecification"]

    try:
        fields = SchemaSpecCompiler().compile(schema, base_path)
    except (CompileError, ValueError) as e:
        print_error(f"Cannot compile {schema_file}: {e}")
        raise SystemExit(1)

    if not fields:
        print_warning(f"{schema_file.name} declares no properties")

    if as_json:
        click.echo(json.dumps([spec.to_dict() for spec in fields], indent=2, default=str))
        return

    tree = Tree(f"[bold]{escape(schema_file.name)}[/bold]")
    for spec in fields:
        _add_branch(tree, spec)
    console.print(tree)


def _read_schema(path: Path):
    if path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(path.read_text())
    return json.loads(path.read_text())


def _add_branch(tree: Tree, spec: FieldSpec) -> None:
    label = f"{escape(spec.path)} [dim]({escape(spec.title or spec.kind.value)})[/dim]"
    if spec.required:
        label += " [red]*[/red]"
    if spec.is_conditional:
        label += f" [cyan]when {escape(str(spec.parent_discriminator_value))}[/cyan]"
    if spec.enum_values:
        label += f" [yellow]{escape(str(list(spec.enum_values)))}[/yellow]"
    branch = tree.add(label)
    for child in spec.children:
        _add_branch(branch, child)


@main.command("track")
@click.argument("task_id")
@click.option("--workspace", is_flag=True, help="Track a workspace build instead of a sync")
@click.pass_context
def track(ctx, task_id: str, workspace: bool):
    """Follow a background task until it succeeds or fails."""
    config = _require_config(ctx)
    state = asyncio.run(_track(config, task_id, workspace))

    if state.succeeded:
        print_success(f"Task {task_id} succeeded")
        return
    for line in state.logs:
        click.echo(line, err=True)
    print_error(f"Task {task_id} failed: {state.failure_message}")
    raise SystemExit(1)


async def _track(config: PipedeckConfig, task_id: str, workspace: bool) -> PollState:
    async with _build_client(config) as client:
        if workspace:
            policy, interval = FinalEntryProgress(), config.workspace_poll_interval_s
        else:
            policy, interval = JobLinkedProgress(), config.poll_interval_s
        poller = JobStatusPoller(
            tasks=client,
            jobs=client,
            policy=policy,
            interval=interval,
            backoff_interval=config.poll_backoff_s,
        )
        handle = poller.track(task_id, listener=_ProgressPrinter())
        try:
            return await handle.wait()
        finally:
            poller.close()


@main.command("sync")
@click.argument("block_id")
@click.pass_context
def sync(ctx, block_id: str):
    """Trigger a connection sync and wait for it."""
    config = _require_config(ctx)
    print_info(f"Starting sync for {block_id}")
    _report(asyncio.run(_sync(config, block_id)))


async def _sync(config: PipedeckConfig, block_id: str) -> WorkflowResult:
    async with _build_client(config) as client:
        workflow = ConnectionSyncWorkflow.from_config(client, config)
        try:
            return await workflow.sync(block_id, listener=_ProgressPrinter())
        finally:
            workflow.close()


@main.group("workspace")
def workspace_group():
    """Manage the transformation workspace."""
    pass


@workspace_group.command("create")
@click.option("--repo-url", required=True, help="Git repository URL")
@click.option("--schema", required=True, help="Target schema for transformations")
@click.option("--token", default=None, help="Git access token")
@click.pass_context
def workspace_create(ctx, repo_url: str, schema: str, token: Optional[str]):
    """Create the workspace and wait for the build."""
    config = _require_config(ctx)
    params = WorkspaceParams(gitrepo_url=repo_url, schema=schema, gitrepo_access_token=token)
    result = asyncio.run(_create_workspace(config, params))
    for line in result.logs if result.ok else ():
        click.echo(line)
    _report(result)


async def _create_workspace(config: PipedeckConfig, params: WorkspaceParams) -> WorkflowResult:
    async with _build_client(config) as client:
        workflow = WorkspaceSetupWorkflow.from_config(client, config)
        try:
            return await workflow.create(params)
        finally:
            workflow.close()


if __name__ == "__main__":
    main()

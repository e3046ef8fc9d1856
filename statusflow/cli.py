"""Command-line interface for statusflow."""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, NoReturn

import click

from statusflow.commands import (
    CmdAddStatus,
    CmdAddTransition,
    CmdChangeTransition,
    CmdCreateWorkflow,
    CmdRemoveStatus,
    CmdRemoveTransition,
    CmdSetDefaultStatus,
    CmdUpdateWorkflow,
)
from statusflow.config import StatusflowConfig, load_config
from statusflow.errors import StatusflowError
from statusflow.model import WorkflowState
from statusflow.setup import StatusflowResources, create_repository
from statusflow.values import Transition, workflow_id_from_code

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fail(e: Exception) -> NoReturn:
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _run(
    ctx: click.Context, fn: Callable[[StatusflowResources], Awaitable[Any]]
) -> None:
    config: StatusflowConfig = ctx.obj["config"]

    async def _main():
        async with create_repository(config) as resources:
            await fn(resources)

    try:
        asyncio.run(_main())
    except (StatusflowError, ValueError) as e:
        _fail(e)


def _send(ctx: click.Context, cmd_type: type, **fields: Any) -> None:
    """Build ``cmd_type`` from ``fields`` and run it through the handler."""
    try:
        cmd = cmd_type(**fields)
    except ValueError as e:
        _fail(e)

    async def _handle(resources: StatusflowResources):
        workflow = await resources.handler.handle(cmd)
        click.echo(f"{workflow.code}: version {workflow.version}")

    _run(ctx, _handle)


def _echo_state(state: WorkflowState, version: int) -> None:
    default = state.default_status
    click.echo(f"\nWorkflow: {state.code}  id={state.id}  version={version}")
    click.echo("\nStatuses:")
    for code in state.statuses:
        marker = " (default)" if code == default else ""
        click.echo(f"  {code}{marker}")
    click.echo("\nTransitions:")
    if not state.transitions:
        click.echo("  (none)")
    for t in state.transitions:
        label = f"  [{t.label}]" if t.label else ""
        roles = f"  roles={','.join(t.role_ids)}" if t.role_ids else ""
        click.echo(f"  {t.source} -> {t.destination}{label}{roles}")


# ---------------------------------------------------------------------------
# Click CLI
# ---------------------------------------------------------------------------


@click.group()
@click.option("--db", "database_url", default=None, help="Database URL (overrides config)")
@click.option("--config", "config_path", default=None, help="Path to statusflow.toml")
@click.pass_context
def cli(ctx, database_url, config_path):
    """statusflow - event-sourced status workflows"""
    try:
        config = load_config(config_path, database_url=database_url)
    except ValueError as e:
        _fail(e)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@cli.command("create")
@click.argument("code")
@click.option("-s", "--status", "statuses", multiple=True, help="Initial status (repeatable, first is default)")
@click.pass_context
def create(ctx, code, statuses):
    """Create workflow CODE."""
    _send(ctx, CmdCreateWorkflow, code=code, statuses=list(statuses))


@cli.command("update")
@click.argument("code")
@click.option("-s", "--status", "statuses", multiple=True, help="Wanted status (repeatable)")
@click.pass_context
def update(ctx, code, statuses):
    """Add and remove statuses so CODE has exactly the given ones."""
    _send(
        ctx,
        CmdUpdateWorkflow,
        workflow_id=workflow_id_from_code(code),
        statuses=list(statuses),
    )


@cli.command("add-status")
@click.argument("code")
@click.argument("status")
@click.pass_context
def add_status(ctx, code, status):
    """Add STATUS to workflow CODE."""
    _send(ctx, CmdAddStatus, workflow_id=workflow_id_from_code(code), code=status)


@cli.command("remove-status")
@click.argument("code")
@click.argument("status")
@click.pass_context
def remove_status(ctx, code, status):
    """Remove STATUS from workflow CODE."""
    _send(ctx, CmdRemoveStatus, workflow_id=workflow_id_from_code(code), code=status)


@cli.command("set-default")
@click.argument("code")
@click.argument("status")
@click.pass_context
def set_default(ctx, code, status):
    """Make STATUS the default status of workflow CODE."""
    _send(
        ctx, CmdSetDefaultStatus, workflow_id=workflow_id_from_code(code), code=status
    )


@cli.command("add-transition")
@click.argument("code")
@click.argument("source")
@click.argument("destination")
@click.option("--label", default=None, help="Display label")
@click.option("--description", default=None)
@click.option("--role", "roles", multiple=True, help="Role allowed to use the transition")
@click.pass_context
def add_transition(ctx, code, source, destination, label, description, roles):
    """Allow moving from SOURCE to DESTINATION in workflow CODE."""
    _send(
        ctx,
        CmdAddTransition,
        workflow_id=workflow_id_from_code(code),
        transition={
            "source": source,
            "destination": destination,
            "label": label,
            "description": description,
            "role_ids": roles,
        },
    )


@cli.command("change-transition")
@click.argument("code")
@click.argument("source")
@click.argument("destination")
@click.option("--to-source", default=None, help="New source status")
@click.option("--to-destination", default=None, help="New destination status")
@click.option("--label", default=None, help="Display label")
@click.option("--description", default=None)
@click.option("--role", "roles", multiple=True, help="Replace the allowed roles (repeatable)")
@click.pass_context
def change_transition(ctx, code, source, destination, to_source, to_destination, label, description, roles):
    """Change the SOURCE -> DESTINATION transition of workflow CODE.

    Only the given options change; everything else is kept from the current
    transition.
    """
    changes: dict[str, Any] = {
        "source": to_source,
        "destination": to_destination,
        "label": label,
        "description": description,
        "role_ids": roles or None,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    async def _change(resources: StatusflowResources):
        workflow_id = workflow_id_from_code(code)
        workflow = await resources.repo.load(workflow_id)
        current = workflow.get_transition(source, destination)
        workflow = await resources.handler.handle(
            CmdChangeTransition(
                workflow_id=workflow_id,
                source=source,
                destination=destination,
                transition=Transition(**{**dict(current), **changes}),
            )
        )
        click.echo(f"{workflow.code}: version {workflow.version}")

    _run(ctx, _change)


@cli.command("remove-transition")
@click.argument("code")
@click.argument("source")
@click.argument("destination")
@click.pass_context
def remove_transition(ctx, code, source, destination):
    """Remove the SOURCE -> DESTINATION transition of workflow CODE."""
    _send(
        ctx,
        CmdRemoveTransition,
        workflow_id=workflow_id_from_code(code),
        source=source,
        destination=destination,
    )


@cli.command("show")
@click.argument("code")
@click.option("--at-version", type=int, default=None, help="Show the state as of this event version")
@click.pass_context
def show(ctx, code, at_version):
    """Show statuses and transitions of workflow CODE."""

    async def _show(resources: StatusflowResources):
        workflow_id = workflow_id_from_code(code)
        if at_version is not None:
            state = await resources.repo.replay_workflow(workflow_id, at_version)
            _echo_state(state, at_version)
            return
        workflow = await resources.repo.load(workflow_id)
        _echo_state(workflow.state, workflow.version)

    _run(ctx, _show)


@cli.command("history")
@click.argument("code")
@click.pass_context
def history(ctx, code):
    """List the stored events of workflow CODE."""

    async def _history(resources: StatusflowResources):
        records = await resources.repo.history(workflow_id_from_code(code))
        click.echo(f"\n{'Version':<10} {'Event Type':<35} At")
        click.echo("-" * 70)
        for r in records:
            click.echo(f"{r.version:<10} {r.event.type:<35} {r.at}")

    _run(ctx, _history)


@cli.command("list")
@click.pass_context
def list_workflows(ctx):
    """List workflows with their status and transition counts."""

    async def _list(resources: StatusflowResources):
        rows = await resources.query.list_workflows()
        if not rows:
            click.echo("No workflows found")
            return
        click.echo(f"\n{'Code':<30} {'Default':<20} {'Statuses':<10} Transitions")
        click.echo("-" * 75)
        for row in rows:
            click.echo(
                f"{row['code']:<30} {row['default_status'] or '-':<20} "
                f"{row['status_count']:<10} {row['transition_count']}"
            )

    _run(ctx, _list)


def main() -> None:
    """Main CLI entry point (delegates to click)."""
    cli()


if __name__ == "__main__":
    main()

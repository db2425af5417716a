"""CLI commands for context and auth files: llmq edit/auth/path/rm/kill."""

from __future__ import annotations

import logging

import click

from llmq.cli.common import ensure_auth, ensure_context, fatal_errors, resolve_target, split_target
from llmq.core.errors import ContextIOError
from llmq.proc.terminator import locate_and_signal

log = logging.getLogger(__name__)


@click.command("edit")
@click.argument("target")
@click.pass_context
@fatal_errors
def edit_cmd(ctx: click.Context, target: str) -> None:
    """Edit the context file with $EDITOR."""
    resolved = resolve_target(ctx, target, require_context=True)
    ensure_context(resolved.context)
    click.edit(filename=str(resolved.context))


@click.command("auth")
@click.argument("plugin")
@click.pass_context
@fatal_errors
def auth_cmd(ctx: click.Context, plugin: str) -> None:
    """Edit the plugin authfile with $EDITOR."""
    name, _ = split_target(plugin)
    resolved = resolve_target(ctx, name)
    click.edit(filename=str(ensure_auth(resolved.plugin.name)))


@click.command("path")
@click.argument("target", required=False)
@click.pass_context
@fatal_errors
def path_cmd(ctx: click.Context, target: str | None) -> None:
    """Print the absolute path of the context (or plugin data directory)."""
    resolved = resolve_target(ctx, target)
    click.echo(str(resolved.context or resolved.datadir))


@click.command("rm")
@click.argument("target")
@click.pass_context
@fatal_errors
def rm_cmd(ctx: click.Context, target: str) -> None:
    """Remove the context file."""
    resolved = resolve_target(ctx, target, require_context=True)
    if resolved.context.exists():
        try:
            resolved.context.unlink()
        except OSError as e:
            raise ContextIOError(f"could not remove {resolved.context}: {e}") from e
        log.info("Removed %s", resolved.context)


@click.command("kill")
@click.argument("target")
@click.pass_context
@fatal_errors
def kill_cmd(ctx: click.Context, target: str) -> None:
    """Terminate the llmq process that has the context open."""
    resolved = resolve_target(ctx, target, require_context=True)
    pids = locate_and_signal(resolved.context)
    log.info("Signalled %s", ", ".join(str(pid) for pid in pids))

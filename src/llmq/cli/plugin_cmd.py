"""CLI commands describing plugins: llmq list, llmq help."""

from __future__ import annotations

import click

from llmq.cli.common import split_target


@click.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List all available plugins and their descriptions."""
    entries = ctx.find_root().obj["registry"].list_all()
    width = max((len(e.name) for e in entries), default=0)
    for entry in entries:
        click.echo(f"{entry.name:<{width + 1}}: {entry.descr}")


@click.command("help")
@click.argument("plugin", required=False)
@click.pass_context
def help_cmd(ctx: click.Context, plugin: str | None) -> None:
    """Display the llmq or plugin help and exit."""
    root = ctx.find_root()
    if plugin is None:
        click.echo(root.get_help())
        return
    name, _ = split_target(plugin)
    try:
        instance = root.obj["registry"].get(name)
    except KeyError as e:
        raise click.UsageError(f'plugin "{name}" not found', ctx=ctx) from e
    click.echo(instance.help())

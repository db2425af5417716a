"""CLI entry point for llmq."""

from __future__ import annotations

import logging
import sys

import click

from llmq import __version__
from llmq.cli.chat_cmd import chat_cmd, init_cmd, query_cmd
from llmq.cli.context_cmd import auth_cmd, edit_cmd, kill_cmd, path_cmd, rm_cmd
from llmq.cli.plugin_cmd import help_cmd, list_cmd
from llmq.core.config import load_config
from llmq.core.errors import LlmqError
from llmq.providers.registry import build_registry

LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


class PrefixGroup(click.Group):
    """Group that also accepts any unambiguous prefix of an action (c, q, ...)."""

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        command = super().get_command(ctx, cmd_name)
        if command is not None:
            return command
        matches = [name for name in self.list_commands(ctx) if name.startswith(cmd_name)]
        if not matches:
            return None
        if len(matches) > 1:
            ctx.fail(f"ambiguous action {cmd_name!r}: {', '.join(sorted(matches))}")
        return super().get_command(ctx, matches[0])

    def resolve_command(self, ctx: click.Context, args: list[str]):
        _, command, rest = super().resolve_command(ctx, args)
        return command.name if command else None, command, rest


@click.group(cls=PrefixGroup)
@click.version_option(version=__version__, prog_name="llmq")
@click.option("-q", "--quiet", is_flag=True, help="Do not print the reply to stdout (chat only).")
@click.option("-i", "--no-stdin", is_flag=True, help="Do not read a message from stdin when MSGS is missing.")
@click.option("-v", "--verbose", is_flag=True, help="Print HTTP and other llmq diagnostics to stderr.")
@click.pass_context
def cli(ctx: click.Context, quiet: bool, no_stdin: bool, verbose: bool) -> None:
    """llmq: a query CLI and context manager for LLM-powered shell pipelines.

    \b
    usage: llmq [-qiv] ACTION PLUGIN[://CONTEXT] [OPTIONS]... [MSGS]...

    Each plugin keeps its authfile under $XDG_CONFIG_HOME/llmq/PLUGIN and its
    contexts under $XDG_DATA_HOME/llmq/PLUGIN (or ~/.config/... and
    ~/.local/share/...). CONTEXT is a YAML file named without its ".yml"
    suffix. ACTION may be abbreviated to any unique prefix.
    """
    try:
        config = load_config()
    except LlmqError as e:
        raise click.ClickException(str(e)) from e

    level = logging.DEBUG if verbose else getattr(
        logging, str(config.get("log_level", "warning")).upper(), logging.WARNING
    )
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)

    ctx.obj = {
        "quiet": quiet,
        "no_stdin": no_stdin,
        "verbose": verbose,
        "config": config,
        "registry": build_registry(),
    }


cli.add_command(query_cmd)
cli.add_command(chat_cmd)
cli.add_command(init_cmd)
cli.add_command(edit_cmd)
cli.add_command(auth_cmd)
cli.add_command(path_cmd)
cli.add_command(rm_cmd)
cli.add_command(kill_cmd)
cli.add_command(list_cmd)
cli.add_command(help_cmd)


if __name__ == "__main__":
    cli()

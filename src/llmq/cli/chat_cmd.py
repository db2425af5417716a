"""CLI commands that talk to the endpoint: llmq query, llmq chat, llmq init."""

from __future__ import annotations

import logging

import click

from llmq.cli.common import (
    ensure_context,
    fatal_errors,
    load_auth,
    read_stdin,
    resolve_target,
)
from llmq.core.document import Document
from llmq.core.errors import ParseError
from llmq.core.fileutil import read_text
from llmq.core.writer import ContextWriter
from llmq.llm.client import StreamingClient
from llmq.stream.session import exchange

log = logging.getLogger(__name__)

_PASSTHROUGH = {"ignore_unknown_options": True, "allow_interspersed_args": False}


def _prepare(ctx: click.Context, target: str, args: tuple[str, ...], use_stdin: bool, require_context: bool):
    obj = ctx.find_root().obj
    if obj["quiet"] and ctx.command.name != "chat":
        raise click.UsageError("quiet flag only supported for chat mode", ctx=ctx)
    resolved = resolve_target(ctx, target, require_context=require_context)
    plugin = resolved.plugin
    reader = read_stdin if use_stdin and not obj["no_stdin"] else None
    options = plugin.parse_args(args, read_stdin=reader)
    return resolved, plugin, options


def _parse_snapshot(data: bytes, source: str) -> Document:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"context {source} is not valid UTF-8: {e}") from e
    return Document.parse(text, source=source)


@click.command("query", context_settings=_PASSTHROUGH)
@click.argument("target")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
@fatal_errors
def query_cmd(ctx: click.Context, target: str, args: tuple[str, ...]) -> None:
    """Query and stream the response without modifying the context.

    TARGET is PLUGIN[://CONTEXT]; ARGS are passed to the plugin.
    """
    obj = ctx.find_root().obj
    resolved, plugin, options = _prepare(ctx, target, args, use_stdin=True, require_context=False)
    if options.help:
        click.echo(plugin.help())
        return

    document = Document()
    if resolved.context is not None and resolved.context.exists():
        document = Document.parse(read_text(resolved.context), source=str(resolved.context))

    plugin.initialize(document, options, load_auth(plugin.name))
    client = StreamingClient(obj["config"])
    exchange(plugin, client, writer=None, echo=True, retries=obj["config"]["retries"])


@click.command("chat", context_settings=_PASSTHROUGH)
@click.argument("target")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
@fatal_errors
def chat_cmd(ctx: click.Context, target: str, args: tuple[str, ...]) -> None:
    """Query, stream the response, and update the context.

    TARGET is PLUGIN://CONTEXT; ARGS are passed to the plugin. The context
    file is locked for the duration of the request and rewritten as each
    part of the reply arrives.
    """
    obj = ctx.find_root().obj
    resolved, plugin, options = _prepare(ctx, target, args, use_stdin=True, require_context=True)
    if options.help:
        click.echo(plugin.help())
        return

    auth = load_auth(plugin.name)
    ensure_context(resolved.context)
    with ContextWriter(resolved.context) as writer:
        document = _parse_snapshot(writer.snapshot, str(resolved.context))
        plugin.initialize(document, options, auth)
        client = StreamingClient(obj["config"])
        exchange(
            plugin,
            client,
            writer=writer,
            echo=not obj["quiet"],
            retries=obj["config"]["retries"],
        )


@click.command("init", context_settings=_PASSTHROUGH)
@click.argument("target")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
@fatal_errors
def init_cmd(ctx: click.Context, target: str, args: tuple[str, ...]) -> None:
    """(Re-)initialize the context file using OPTIONS. Ignores stdin."""
    resolved, plugin, options = _prepare(ctx, target, args, use_stdin=False, require_context=True)
    if options.help:
        click.echo(plugin.help())
        return

    ensure_context(resolved.context)
    with ContextWriter(resolved.context) as writer:
        document = _parse_snapshot(writer.snapshot, str(resolved.context))
        plugin.initialize(document, options, None)
        writer.overwrite(document.dump())
    log.info("Initialized %s", resolved.context)

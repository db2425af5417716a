"""YAML-backed context document: a tree of maps, sequences and scalars.

The same tree is emitted as YAML for the on-disk context file and as JSON
for the request body sent to the endpoint.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from typing import Any

import yaml

from llmq.core.errors import ParseError

log = logging.getLogger(__name__)


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that rejects duplicate keys instead of keeping the last one."""

    def construct_mapping(self, node, deep=False):
        seen = set()
        for key_node, _ in node.value:
            if key_node.tag == "tag:yaml.org,2002:merge":
                continue
            key = self.construct_object(key_node, deep=deep)
            try:
                duplicate = key in seen
            except TypeError:
                continue  # unhashable; reported by the base constructor
            if duplicate:
                raise yaml.constructor.ConstructorError(
                    "while constructing a mapping",
                    node.start_mark,
                    f"found duplicate key {key!r}",
                    key_node.start_mark,
                )
            seen.add(key)
        return super().construct_mapping(node, deep=deep)


_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"

# YAML 1.1 int and float patterns minus the base-60 forms ("12:30:00")
_PLAIN_NUMBERS = {
    "tag:yaml.org,2002:int": re.compile(
        r"""^(?:[-+]?0b[0-1_]+
        |[-+]?0[0-7_]+
        |[-+]?(?:0|[1-9][0-9_]*)
        |[-+]?0x[0-9a-fA-F_]+)$""",
        re.X,
    ),
    "tag:yaml.org,2002:float": re.compile(
        r"""^(?:[-+]?(?:[0-9][0-9_]*)\.[0-9_]*(?:[eE][-+][0-9]+)?
        |\.[0-9_]+(?:[eE][-+][0-9]+)?
        |[-+]?\.(?:inf|Inf|INF)
        |\.(?:nan|NaN|NAN))$""",
        re.X,
    ),
}

# dates and times stay text; they have no JSON form
_UniqueKeyLoader.yaml_implicit_resolvers = {
    first: [
        (tag, _PLAIN_NUMBERS.get(tag, regexp))
        for tag, regexp in resolvers
        if tag != _TIMESTAMP_TAG
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class _ContextDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    # block style keeps long multi-line message contents readable in $EDITOR
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


_ContextDumper.add_representer(str, _represent_str)


class Document:
    """The evolving conversation context.

    Root is always a map. Nodes are plain dicts, lists and scalars so that
    callers (plugins, the delta merger) can hold references to sub-maps and
    mutate them in place.
    """

    def __init__(self, root: dict | None = None) -> None:
        self._root: dict = root if root is not None else {}

    @classmethod
    def parse(cls, text: str, source: str = "<context>") -> Document:
        """Parse YAML text into a Document.

        An empty document becomes an empty map; any other non-map root is a
        configuration error.
        """
        try:
            data = yaml.load(text, Loader=_UniqueKeyLoader)
        except yaml.YAMLError as e:
            raise ParseError(f"could not parse YAML context {source}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ParseError(f"context {source} must be a YAML map, got {type(data).__name__}")
        return cls(data)

    @property
    def root(self) -> dict:
        return self._root

    def __contains__(self, key: str) -> bool:
        return key in self._root

    def get(self, key: str, default: Any = None) -> Any:
        return self._root.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._root[key] = value

    def seed_map(self, key: str) -> dict:
        """Return the map at key, creating it if the key is unset."""
        node = self._root.get(key)
        if node is None:
            node = self._root[key] = {}
        elif not isinstance(node, dict):
            raise ParseError(f"context key {key!r} must be a map")
        return node

    def seed_seq(self, key: str) -> list:
        """Return the sequence at key, creating it if the key is unset."""
        node = self._root.get(key)
        if node is None:
            node = self._root[key] = []
        elif not isinstance(node, list):
            raise ParseError(f"context key {key!r} must be a sequence")
        return node

    def append(self, key: str, value: Any) -> Any:
        """Append value to the sequence at key and return it."""
        self.seed_seq(key).append(value)
        return value

    def dump(self) -> str:
        """Serialize to the on-disk YAML encoding."""
        if not self._root:
            return ""
        return yaml.dump(
            self._root,
            Dumper=_ContextDumper,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )

    def to_json(self) -> str:
        """Serialize to the wire (JSON) encoding."""
        try:
            return json.dumps(self._root, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ParseError(f"context cannot be sent as JSON: {e}") from e

    def snapshot(self) -> dict:
        return copy.deepcopy(self._root)

    def restore(self, snapshot: dict) -> None:
        """Replace the tree with a previously taken snapshot.

        The root dict is mutated in place so outstanding references to it
        stay valid.
        """
        self._root.clear()
        self._root.update(copy.deepcopy(snapshot))

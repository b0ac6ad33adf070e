"""Target file names for every node.

Names are derived from titles with a replacement table, then made unique.
The whole mapping is computed up front from the complete node set and frozen,
so the exporter and the patcher always agree on where a node lives, and a
re-run over the same graph produces the same names.

The default table only covers characters that break paths or Obsidian/org
links; anything else in a title passes through unchanged.
"""

from __future__ import annotations

import hashlib
import itertools
import re
from collections import defaultdict
from types import MappingProxyType
from typing import TYPE_CHECKING

from roam2md.errors import UnresolvableIdentity
from roam2md.models import TargetIdentity

if TYPE_CHECKING:
    from collections.abc import Mapping

    from roam2md.graph import Graph
    from roam2md.models import Node

DEFAULT_REPLACEMENTS: dict[str, str] = {
    "/": "-",
    "\\": "-",
    ":": "-",
    '"': "",
    "*": "",
    "?": "",
    "<": "",
    ">": "",
    "|": "",
    "[": "",
    "]": "",
    "#": "",
    "^": "",
    "\n": " ",
    "\t": " ",
}
DEFAULT_MAX_LENGTH = 200
NOTE_SUFFIX = ".md"

_WS_RE = re.compile(r"\s+")
_SUFFIX_WIDTH = 8


def sanitize(title: str, replacements: Mapping[str, str] | None = None,
             max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Apply the replacement table and tidy whitespace; may return ''."""
    table = DEFAULT_REPLACEMENTS if replacements is None else replacements
    name = title
    # Longest keys first so multi-character entries win over their parts.
    for old in sorted(table, key=lambda k: (-len(k), k)):
        if old:
            name = name.replace(old, table[old])
    name = _WS_RE.sub(" ", name).strip().strip(".").strip()
    return name[:max_length].rstrip()


def _suffix_source(node_id: str) -> str:
    alnum = "".join(ch for ch in node_id if ch.isalnum())
    return alnum or hashlib.sha1(node_id.encode()).hexdigest()  # noqa: S324


class IdentityResolver:
    """Resolve every node of a graph to a collision-free TargetIdentity.

    resolver = IdentityResolver(graph)
    resolver.resolve(node)   # -> TargetIdentity
    resolver.mapping         # read-only id -> TargetIdentity
    """

    def __init__(self, graph: Graph, replacements: Mapping[str, str] | None = None,
                 max_length: int = DEFAULT_MAX_LENGTH) -> None:
        self.replacements = dict(DEFAULT_REPLACEMENTS if replacements is None else replacements)
        self.max_length = max_length
        self._mapping = MappingProxyType(self._resolve_all(graph))

    @property
    def mapping(self) -> Mapping[str, TargetIdentity]:
        return self._mapping

    def resolve(self, node: Node) -> TargetIdentity:
        return self._mapping[node.id]

    def _resolve_all(self, graph: Graph) -> dict[str, TargetIdentity]:
        bases: dict[str, str] = {}
        for node in graph.ordered():
            base = sanitize(node.title, self.replacements, self.max_length)
            if not base:
                raise UnresolvableIdentity(node.id, node.title)
            bases[node.id] = base

        # Case-insensitive grouping: the vault may live on a case-folding filesystem.
        groups: dict[str, list[str]] = defaultdict(list)
        for node_id, base in bases.items():
            groups[base.casefold()].append(node_id)

        names: dict[str, str] = {}
        taken: set[str] = set()
        for key, ids in groups.items():
            if len(ids) == 1:
                names[ids[0]] = bases[ids[0]]
                taken.add(key)

        for key in sorted(k for k, ids in groups.items() if len(ids) > 1):
            for node_id in sorted(groups[key]):
                name = self._disambiguate(bases[node_id], node_id, taken)
                names[node_id] = name
                taken.add(name.casefold())

        return {
            node_id: TargetIdentity(node_id=node_id, name=name, path=name + NOTE_SUFFIX)
            for node_id, name in names.items()
        }

    def _disambiguate(self, base: str, node_id: str, taken: set[str]) -> str:
        """Append ' (<id prefix>)', lengthening the prefix until the name is free."""
        source = _suffix_source(node_id)
        widths = [*range(_SUFFIX_WIDTH, len(source), 4), len(source)]
        tags = itertools.chain((source[:w] for w in widths), (f"{source}-{n}" for n in itertools.count(2)))
        for tag in tags:
            suffix = f" ({tag})"
            name = base[: max(1, self.max_length - len(suffix))].rstrip() + suffix
            if name.casefold() not in taken:
                return name
        raise AssertionError("unreachable")


def resolve_identities(graph: Graph, replacements: Mapping[str, str] | None = None,
                       max_length: int = DEFAULT_MAX_LENGTH) -> Mapping[str, TargetIdentity]:
    """Shortcut for IdentityResolver(graph, ...).mapping."""
    return IdentityResolver(graph, replacements, max_length).mapping

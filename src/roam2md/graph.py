"""Assemble snapshot records into an addressable node graph.

The graph is a flat id -> Node table plus an id -> [Link] adjacency list.
Nothing owns anything else, so link cycles between notes are harmless:
following a link is a dict lookup.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from roam2md.db import open_snapshot, read_aliases, read_links, read_nodes, read_refs
from roam2md.models import ROOT, SUBTREE, BrokenLink, Link, Node

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger("roam2md.graph")

_GRAPH_LINK_TYPE = "id"


class Graph:
    """Nodes keyed by id, outgoing id links, and the broken links seen while building."""

    def __init__(self) -> None:
        self.nodes: dict[str, Node] = {}
        self.broken: list[BrokenLink] = []
        self._outgoing: dict[str, list[Link]] = defaultdict(list)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def outgoing(self, node_id: str) -> list[Link]:
        """Links from node_id to other nodes, in snapshot order."""
        return list(self._outgoing.get(node_id, ()))

    def ordered(self) -> list[Node]:
        """Nodes in (file, pos) order, for reproducible runs and logs."""
        return sorted(self.nodes.values(), key=lambda n: (n.file, n.pos, n.id))

    def documents(self) -> dict[str, list[Node]]:
        """Source documents and the nodes they contain, ordered by position."""
        docs: dict[str, list[Node]] = defaultdict(list)
        for node in self.ordered():
            docs[node.file].append(node)
        return dict(docs)

    def children(self, node_id: str) -> list[Node]:
        return [n for n in self.ordered() if n.parent_id == node_id]


def _classify(nodes: list[Node]) -> None:
    """Set role/parent_id for the nodes of one file (sorted by pos).

    A node is nested below the nearest earlier node of lower level that has
    not been closed by an intervening node of equal or lower level. The
    file-level node (level 0) encloses every heading node of its file.
    """
    open_nodes: list[Node] = []
    for node in nodes:
        while open_nodes and open_nodes[-1].level >= node.level:
            open_nodes.pop()
        if open_nodes:
            node.role = SUBTREE
            node.parent_id = open_nodes[-1].id
        else:
            node.role = ROOT
            node.parent_id = None
        open_nodes.append(node)


def build_graph(
    nodes: Iterable[Node],
    links: Iterable[Link],
    aliases: Iterable[tuple[str, str]] = (),
    refs: Iterable[tuple[str, str]] = (),
) -> Graph:
    """Build a Graph from fully-consumed record streams."""
    graph = Graph()
    for node in nodes:
        if node.id in graph.nodes:
            logger.warning("duplicate node id %s in %s — keeping the first", node.id, node.file)
            continue
        graph.nodes[node.id] = node

    by_file: dict[str, list[Node]] = defaultdict(list)
    for node in graph.nodes.values():
        by_file[node.file].append(node)
    for file_nodes in by_file.values():
        file_nodes.sort(key=lambda n: (n.pos, n.level))
        _classify(file_nodes)

    for node_id, alias in aliases:
        node = graph.nodes.get(node_id)
        if node is not None and alias not in node.aliases:
            node.aliases.append(alias)
    for node_id, ref in refs:
        node = graph.nodes.get(node_id)
        if node is not None and ref not in node.refs:
            node.refs.append(ref)

    for link in links:
        if link.type != _GRAPH_LINK_TYPE:
            continue
        if link.source_id not in graph.nodes:
            logger.debug("ignoring link from unknown node %s", link.source_id)
            continue
        if link.target_id not in graph.nodes:
            graph.broken.append(BrokenLink(source=link.source_id, target_id=link.target_id))
            continue
        graph._outgoing[link.source_id].append(link)

    logger.info(
        "graph: %d nodes in %d files, %d broken links",
        len(graph.nodes), len(by_file), len(graph.broken),
    )
    return graph


def load_graph(db_path: Path | str) -> Graph:
    """Open the snapshot read-only and build the complete graph from it."""
    conn = open_snapshot(db_path)
    try:
        return build_graph(
            list(read_nodes(conn)),
            list(read_links(conn)),
            list(read_aliases(conn)),
            list(read_refs(conn)),
        )
    finally:
        conn.close()

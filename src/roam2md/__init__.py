"""Migrate an org-roam note graph into a flat Markdown vault.

Pipeline (each stage needs the complete output of the previous one):

    graph = load_graph("org-roam.db")                 # read-only snapshot
    identities = IdentityResolver(graph).mapping      # id -> TargetIdentity, frozen
    patcher_for(graph, identities).patch(graph)       # [[id:X][..]] -> [[./Name.md][..]]
    Exporter(EmacsRenderer(), "vault").run(graph, identities)

The exporter skips notes whose file already exists, so an interrupted run
resumes where it stopped. The patcher only rewrites id: links, so running it
again changes nothing.
"""

from roam2md.errors import (
    MigrationError,
    RenderFailure,
    RenderTimeout,
    SourceUnavailable,
    UnresolvableIdentity,
    WriteFailed,
)
from roam2md.export import Exporter
from roam2md.graph import Graph, build_graph, load_graph
from roam2md.identity import IdentityResolver, resolve_identities, sanitize
from roam2md.models import BrokenLink, ExportReport, Link, Node, PatchReport, TargetIdentity
from roam2md.patcher import Patcher, patcher_for
from roam2md.renderer import EmacsRenderer, Renderer

__all__ = [
    "BrokenLink",
    "EmacsRenderer",
    "ExportReport",
    "Exporter",
    "Graph",
    "IdentityResolver",
    "Link",
    "MigrationError",
    "Node",
    "PatchReport",
    "Patcher",
    "RenderFailure",
    "RenderTimeout",
    "Renderer",
    "SourceUnavailable",
    "TargetIdentity",
    "UnresolvableIdentity",
    "WriteFailed",
    "build_graph",
    "load_graph",
    "patcher_for",
    "resolve_identities",
    "sanitize",
]

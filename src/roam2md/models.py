"""Data models for the org-roam graph and the migration reports."""

from __future__ import annotations

from dataclasses import dataclass, field

ROOT = "root"
SUBTREE = "subtree"


@dataclass
class Node:
    """One org-roam node: a whole file (level 0) or a heading with an :ID:."""

    id: str
    title: str
    file: str                          # absolute path of the .org document
    level: int = 0                     # 0 = file node, N = heading depth
    pos: int = 1                       # point of the node in its file
    role: str = ROOT                   # root | subtree
    parent_id: str | None = None       # enclosing node when role == subtree
    aliases: list[str] = field(default_factory=list)
    refs: list[str] = field(default_factory=list)

    @property
    def subtree_only(self) -> bool:
        """Render only this heading's subtree rather than the whole file."""
        return self.level > 0


@dataclass(frozen=True)
class Link:
    """A directed id: reference recorded in the snapshot's links table."""

    source_id: str
    target_id: str
    type: str = "id"
    pos: int = 0


@dataclass(frozen=True)
class TargetIdentity:
    """Where a node ends up in the vault and how other notes refer to it."""

    node_id: str
    name: str              # sanitized, unique (case-insensitively) file stem
    path: str              # relative to the target directory

    @property
    def link_target(self) -> str:
        """Org link target written by the patcher, e.g. ./My%20Note.md."""
        return "./" + self.path.replace("%", "%25").replace(" ", "%20")


@dataclass(frozen=True)
class BrokenLink:
    """A reference to an id with no node; reported, never rewritten."""

    source: str            # document path, or source node id for snapshot links
    target_id: str
    line: int = 0          # 1-based line in the document; 0 for snapshot links

    def describe(self) -> str:
        where = f"{self.source}:{self.line}" if self.line else self.source
        return f"{where} -> id:{self.target_id}"


@dataclass
class ExportFailure:
    node_id: str
    title: str
    error: str


@dataclass
class ExportReport:
    """Outcome of one exporter run."""

    exported: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)   # left for a later run (--limit)
    failure: ExportFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class PatchReport:
    """Outcome of one patcher run over all source documents."""

    documents_scanned: int = 0
    documents_written: int = 0
    rewritten: int = 0
    already_patched: int = 0
    broken: list[BrokenLink] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)    # documents in the snapshot but not on disk

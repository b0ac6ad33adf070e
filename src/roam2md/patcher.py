"""Rewrite org-roam id links in the source documents, in place.

    [[id:<ID>][Description]]   ->   [[./Target%20Name.md][Description]]
    [[id:<ID>]]                ->   [[./Target%20Name.md][Target title]]

This mutates the only copy of the user's notes, so it must be safe to run
any number of times: a rewritten link no longer has the id: scheme and is
never matched again, and a document is written back only when its text
actually changed. Links to unknown ids are left exactly as they are and
reported, one BrokenLink per occurrence.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from roam2md.errors import WriteFailed
from roam2md.fs import read_text_exact, write_atomic
from roam2md.models import BrokenLink, PatchReport

if TYPE_CHECKING:
    from collections.abc import Mapping

    from roam2md.graph import Graph
    from roam2md.models import TargetIdentity

logger = logging.getLogger("roam2md.patcher")

# A bracket link ends at the first "]]"; descriptions may hold single brackets and newlines.
ID_LINK_RE = re.compile(r"\[\[id:(?P<id>[^\[\]\s]+)\](?:\[(?P<desc>.+?)\])?\]", re.DOTALL)
# Links in the form the patcher writes; used to count already-converted references.
FILE_LINK_RE = re.compile(r"\[\[(?P<target>\./[^\[\]]+?\.md)\](?:\[.+?\])?\]", re.DOTALL)


def _description(title: str) -> str:
    return title.replace("[", "(").replace("]", ")") or "link"


@dataclass
class PatchResult:
    """What patch_text did to one document."""

    rewritten: int = 0
    already_patched: int = 0
    broken: list[tuple[str, int]] = field(default_factory=list)   # (target id, line)

    @property
    def changed(self) -> bool:
        return self.rewritten > 0


class Patcher:
    """Rewrite id: links using a frozen id -> TargetIdentity mapping."""

    def __init__(self, identities: Mapping[str, TargetIdentity],
                 titles: Mapping[str, str] | None = None) -> None:
        self.identities = identities
        self.titles = dict(titles or {})
        self._targets = {ident.link_target for ident in identities.values()}

    def patch_text(self, text: str) -> tuple[str, PatchResult]:
        """Return (new text, result). Text outside matched links is untouched."""
        result = PatchResult()

        def _replace(m: re.Match[str]) -> str:
            target_id = m.group("id")
            identity = self.identities.get(target_id)
            if identity is None:
                result.broken.append((target_id, text.count("\n", 0, m.start()) + 1))
                return m.group(0)
            desc = m.group("desc") or _description(self.titles.get(target_id, identity.name))
            result.rewritten += 1
            return f"[[{identity.link_target}][{desc}]]"

        new_text = ID_LINK_RE.sub(_replace, text)
        result.already_patched = sum(
            1 for m in FILE_LINK_RE.finditer(text) if m.group("target") in self._targets
        )
        return new_text, result

    def patch_file(self, path: Path, *, dry_run: bool = False) -> PatchResult:
        """Patch one document; write it back only if a link changed."""
        text = read_text_exact(path)
        new_text, result = self.patch_text(text)
        if result.changed and not dry_run:
            try:
                write_atomic(path, new_text)
            except OSError as exc:
                raise WriteFailed(path, exc) from exc
            logger.info("patched %s: %d links", path, result.rewritten)
        return result

    def patch(self, graph: Graph, *, dry_run: bool = False) -> PatchReport:
        """Patch every document that holds at least one node, each exactly once."""
        report = PatchReport()
        for file in sorted(graph.documents()):
            path = Path(file)
            try:
                result = self.patch_file(path, dry_run=dry_run)
            except FileNotFoundError:
                logger.warning("document %s is in the database but not on disk — skipped", path)
                report.missing.append(file)
                continue
            except (OSError, UnicodeDecodeError) as exc:
                raise WriteFailed(path, exc) from exc

            report.documents_scanned += 1
            if result.changed:
                report.documents_written += 0 if dry_run else 1
            report.rewritten += result.rewritten
            report.already_patched += result.already_patched
            for target_id, line in result.broken:
                logger.warning("broken link in %s:%d -> id:%s", path, line, target_id)
                report.broken.append(BrokenLink(source=file, target_id=target_id, line=line))

        logger.info(
            "patch: %d documents, %d written, %d links rewritten, %d broken",
            report.documents_scanned, report.documents_written, report.rewritten, len(report.broken),
        )
        return report


def patcher_for(graph: Graph, identities: Mapping[str, TargetIdentity]) -> Patcher:
    """A Patcher that labels bare [[id:...]] links with the target node's title."""
    return Patcher(identities, {node_id: node.title for node_id, node in graph.nodes.items()})

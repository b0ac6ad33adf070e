"""Export every node to its own Markdown file.

A node whose target file already exists is treated as done and skipped, so
after a failed run the next invocation only renders what is missing. The
first render or write failure stops the run: files written so far stay in
place, nothing is rolled back, and the failing node is retried next time.

Source .org documents are never touched here; see roam2md.patcher.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from roam2md.errors import RenderFailure, WriteFailed
from roam2md.fs import write_atomic
from roam2md.models import ExportFailure, ExportReport

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from roam2md.graph import Graph
    from roam2md.models import Node, TargetIdentity
    from roam2md.renderer import Renderer

logger = logging.getLogger("roam2md.export")

# Status strings passed to the on_node callback.
EXPORTED = "exported"
SKIPPED = "skipped"
FAILED = "failed"


def frontmatter(node: Node) -> str:
    """YAML front matter carrying the node's id, aliases and refs."""
    lines = ["---", f"roam_id: {json.dumps(node.id)}"]
    for key, values in (("aliases", node.aliases), ("refs", node.refs)):
        if values:
            lines.append(f"{key}:")
            lines.extend(f"  - {json.dumps(v, ensure_ascii=False)}" for v in values)
    lines.append("---")
    return "\n".join(lines) + "\n\n"


class Exporter:
    """Render nodes into target_dir, skipping those already exported."""

    def __init__(
        self,
        renderer: Renderer,
        target_dir: Path | str,
        *,
        frontmatter: bool = False,
        limit: int | None = None,
        on_node: Callable[[Node, str], None] | None = None,
    ) -> None:
        self.renderer = renderer
        self.target_dir = Path(target_dir).expanduser()
        self.frontmatter = frontmatter
        self.limit = limit
        self.on_node = on_node

    def target_path(self, identity: TargetIdentity) -> Path:
        return self.target_dir / identity.path

    def is_exported(self, identity: TargetIdentity) -> bool:
        """The output file existing is the only completion marker."""
        return self.target_path(identity).exists()

    def _notify(self, node: Node, status: str) -> None:
        if self.on_node is not None:
            self.on_node(node, status)

    def run(self, graph: Graph, identities: Mapping[str, TargetIdentity]) -> ExportReport:
        """Export all nodes of graph; raises RenderFailure/WriteFailed on the first failure.

        The raised exception carries the partial ExportReport as `.report`.
        """
        report = ExportReport()
        renders = 0
        for node in graph.ordered():
            identity = identities[node.id]
            path = self.target_path(identity)

            if self.is_exported(identity):
                logger.debug("skip %s: %s exists", node.id, path)
                report.skipped.append(node.id)
                self._notify(node, SKIPPED)
                continue

            if self.limit is not None and renders >= self.limit:
                report.pending.append(node.id)
                continue

            logger.info("exporting %s -> %s", node.title, path)
            renders += 1
            try:
                text = self.renderer.render(node, identity)
                if self.frontmatter:
                    text = frontmatter(node) + text
                try:
                    write_atomic(path, text)
                except OSError as exc:
                    raise WriteFailed(path, exc) from exc
            except (RenderFailure, WriteFailed) as exc:
                report.failure = ExportFailure(node_id=node.id, title=node.title, error=str(exc))
                exc.report = report
                logger.error("export aborted at %s (%s): %s", node.title, node.id, exc)
                self._notify(node, FAILED)
                raise

            report.exported.append(node.id)
            self._notify(node, EXPORTED)

        logger.info(
            "export: %d exported, %d skipped, %d pending",
            len(report.exported), len(report.skipped), len(report.pending),
        )
        return report

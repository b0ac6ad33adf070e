"""Rendering one node to Markdown.

The exporter only depends on the Renderer protocol; EmacsRenderer is the
real implementation and shells out to `emacs --batch` with the user's init
file, so org features configured there (babel, syntax highlighting, ox-gfm)
behave as they do interactively. Emacs startup dominates the cost of each
call; a hung Emacs is killed after `timeout` seconds.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from roam2md.errors import RenderFailure, RenderTimeout

if TYPE_CHECKING:
    from collections.abc import Sequence

    from roam2md.models import Node, TargetIdentity

logger = logging.getLogger("roam2md.renderer")

DEFAULT_TIMEOUT = 120.0
_STDERR_TAIL = 2000


class Renderer(Protocol):
    def render(self, node: Node, identity: TargetIdentity) -> str:
        """Return the node's content as Markdown, or raise RenderFailure."""
        ...


def elisp_quote(text: str) -> str:
    """Quote text as an Emacs Lisp string literal."""
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class EmacsRenderer:
    """Export a node with org-export in a batch Emacs."""

    def __init__(
        self,
        emacs: str = "emacs",
        init_file: str | None = "~/.emacs.d/init.el",
        timeout: float = DEFAULT_TIMEOUT,
        backend: str = "gfm",
        requires: Sequence[str] = ("ox-gfm",),
    ) -> None:
        self.emacs = emacs
        self.init_file = init_file
        self.timeout = timeout
        self.backend = backend
        self.requires = list(requires)

    def form(self, node: Node, out_file: Path) -> str:
        """The elisp form that exports node into out_file."""
        subtree = "t" if node.subtree_only else "nil"
        requires = "\n   ".join(f"(require '{feature})" for feature in self.requires)
        goto = ""
        if node.subtree_only:
            goto = (
                f"(goto-char (or (org-find-entry-with-id {elisp_quote(node.id)})"
                f" (error \"No entry with ID %s\" {elisp_quote(node.id)})))"
            )
        return f"""(progn
   (message "Exporting %s" {elisp_quote(node.title)})
   {requires}
   (find-file {elisp_quote(node.file)})
   {goto}
   (let ((coding-system-for-write 'utf-8))
     (org-export-to-file '{self.backend} {elisp_quote(str(out_file))} nil {subtree})))"""

    def command(self, node: Node, out_file: Path) -> list[str]:
        cmd = [self.emacs, "--batch"]
        if self.init_file:
            cmd += ["-l", os.path.expanduser(self.init_file)]
        cmd += ["--eval", self.form(node, out_file)]
        return cmd

    def render(self, node: Node, identity: TargetIdentity) -> str:
        with tempfile.TemporaryDirectory(prefix="roam2md-") as tmp:
            out_file = Path(tmp) / f"{identity.node_id}.md"
            cmd = self.command(node, out_file)
            logger.debug("render %s: %s", node.id, cmd[:-1])
            try:
                proc = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    timeout=self.timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                raise RenderTimeout(node.id, node.title, self.timeout) from exc
            except OSError as exc:
                raise RenderFailure(node.id, node.title, f"cannot run {self.emacs}: {exc}") from exc

            if proc.returncode != 0:
                detail = (proc.stderr or "").strip()[-_STDERR_TAIL:] or f"emacs exited with {proc.returncode}"
                raise RenderFailure(node.id, node.title, detail)
            if not out_file.exists():
                raise RenderFailure(node.id, node.title, "emacs finished but wrote no output")
            try:
                return out_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise RenderFailure(node.id, node.title, f"cannot read exported markdown: {exc}") from exc

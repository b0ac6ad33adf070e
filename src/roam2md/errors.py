"""Errors raised by the migration pipeline.

Every fatal condition is a MigrationError; the CLI turns them into a printed
diagnostic and exit status 1. Broken links are not errors — see
roam2md.models.BrokenLink.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from roam2md.models import ExportReport


class MigrationError(Exception):
    """Base class for every abort condition."""


class SourceUnavailable(MigrationError):
    """The org-roam snapshot is missing or not a usable database."""


class UnresolvableIdentity(MigrationError):
    """Sanitizing a node's title left nothing to name the output file with."""

    def __init__(self, node_id: str, title: str = "") -> None:
        self.node_id = node_id
        self.title = title
        super().__init__(f"cannot derive a file name for node {node_id} (title {title!r})")


class RenderFailure(MigrationError):
    """The external renderer failed for one node."""

    def __init__(self, node_id: str, title: str, detail: str) -> None:
        self.node_id = node_id
        self.title = title
        self.detail = detail
        # Set by the exporter so callers can still see what got done before the abort.
        self.report: ExportReport | None = None
        super().__init__(f"failed to export {title!r} ({node_id}): {detail}")


class RenderTimeout(RenderFailure):
    """The external renderer did not finish within the configured timeout."""

    def __init__(self, node_id: str, title: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(node_id, title, f"renderer timed out after {timeout:g}s")


class WriteFailed(MigrationError):
    """A file (exported note or patched source document) could not be written."""

    def __init__(self, path: Path, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        self.report: ExportReport | None = None
        super().__init__(f"failed to write {path}: {cause}")

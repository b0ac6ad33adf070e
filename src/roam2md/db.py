"""Read-only access to an org-roam SQLite snapshot (org-roam.db).

Tables used:
    nodes(id, file, level, pos, title, ...)     # required
    links(pos, source, dest, type, ...)         # required
    aliases(node_id, alias)                     # optional
    refs(node_id, ref, type)                    # optional

org-roam stores text columns as printed Emacs Lisp strings, e.g. the id
ABC-1 is stored as "\"ABC-1\"". elisp_str() turns them back into plain text.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING

from roam2md.errors import SourceUnavailable
from roam2md.models import Link, Node

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("roam2md.db")

_REQUIRED_COLUMNS = {
    "nodes": {"id", "file", "level", "pos", "title"},
    "links": {"source", "dest", "type"},
}


def elisp_str(value: object) -> str:
    """Decode a printed elisp string ("\"a \\\"b\\\"\"" -> 'a "b"'); pass other values through."""
    if value is None:
        return ""
    text = str(value)
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        out: list[str] = []
        chars = iter(text[1:-1])
        for ch in chars:
            if ch == "\\":
                out.append(next(chars, ""))
            else:
                out.append(ch)
        return "".join(out)
    return text


def _table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def open_snapshot(db_path: Path | str) -> sqlite3.Connection:
    """Open the snapshot read-only and check it has the org-roam schema.

    Raises SourceUnavailable if the file is missing, is not SQLite, or lacks
    the nodes/links columns this tool reads.
    """
    path = Path(db_path).expanduser()
    if not path.is_file():
        msg = f"org-roam database not found: {path}"
        raise SourceUnavailable(msg)

    uri = f"{path.resolve().as_uri()}?mode=ro"
    try:
        conn = sqlite3.connect(uri, uri=True)
    except sqlite3.Error as exc:
        msg = f"cannot open {path}: {exc}"
        raise SourceUnavailable(msg) from exc

    try:
        for table, required in _REQUIRED_COLUMNS.items():
            missing = required - _table_columns(conn, table)
            if missing:
                msg = f"{path} is not an org-roam database: table {table!r} lacks {', '.join(sorted(missing))}"
                raise SourceUnavailable(msg)
    except sqlite3.DatabaseError as exc:
        conn.close()
        msg = f"{path} is not a valid SQLite database: {exc}"
        raise SourceUnavailable(msg) from exc
    except SourceUnavailable:
        conn.close()
        raise
    return conn


# ---------------------------------------------------------------------------
# Record streams
# ---------------------------------------------------------------------------


def read_nodes(conn: sqlite3.Connection) -> Iterator[Node]:
    """Yield every node row, in file/position order."""
    rows = conn.execute("SELECT id, file, level, pos, title FROM nodes ORDER BY file, pos")
    for node_id, file, level, pos, title in rows:
        yield Node(
            id=elisp_str(node_id),
            title=elisp_str(title),
            file=elisp_str(file),
            level=int(level or 0),
            pos=int(pos or 1),
        )


def read_links(conn: sqlite3.Connection) -> Iterator[Link]:
    """Yield every link row; the builder keeps only id links."""
    rows = conn.execute("SELECT source, dest, type, pos FROM links ORDER BY source, pos")
    for source, dest, link_type, pos in rows:
        yield Link(
            source_id=elisp_str(source),
            target_id=elisp_str(dest),
            type=elisp_str(link_type),
            pos=int(pos or 0),
        )


def _read_pairs(conn: sqlite3.Connection, table: str, column: str) -> Iterator[tuple[str, str]]:
    if "node_id" not in _table_columns(conn, table):
        logger.debug("snapshot has no %s table", table)
        return
    for node_id, value in conn.execute(f"SELECT node_id, {column} FROM {table} ORDER BY rowid"):
        yield elisp_str(node_id), elisp_str(value)


def read_aliases(conn: sqlite3.Connection) -> Iterator[tuple[str, str]]:
    return _read_pairs(conn, "aliases", "alias")


def read_refs(conn: sqlite3.Connection) -> Iterator[tuple[str, str]]:
    """Yield (node_id, ref) for ROAM_REFS entries: cite keys and URLs."""
    if "type" not in _table_columns(conn, "refs"):
        yield from _read_pairs(conn, "refs", "ref")
        return
    for node_id, ref, ref_type in conn.execute("SELECT node_id, ref, type FROM refs ORDER BY rowid"):
        ref_s, type_s = elisp_str(ref), elisp_str(ref_type)
        # org-roam splits "cite:key" / "https://x" into type + ref; put them back together.
        if type_s and not ref_s.startswith(f"{type_s}:"):
            yield elisp_str(node_id), f"{type_s}:{ref_s}"
        else:
            yield elisp_str(node_id), ref_s

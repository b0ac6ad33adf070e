"""
Shared pytest fixtures: a throwaway org-roam database, its .org files, and
fake renderers that never start Emacs.
"""
import sqlite3
from pathlib import Path

import pytest

from roam2md.errors import RenderFailure

ROOT_ID = "6D1C9E7A-2B4F-4C1E-9A0B-111111111111"
SUB_ID = "6D1C9E7A-2B4F-4C1E-9A0B-222222222222"
OTHER_ID = "0F3A5B7C-9D1E-4F2A-8B3C-333333333333"
MISSING_ID = "DEADBEEF-0000-0000-0000-000000000000"


def q(value: str) -> str:
    """Print a string the way org-roam stores it (an elisp string literal)."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def make_roam_db(path: Path, nodes, links=(), aliases=(), refs=()) -> Path:
    """Create an org-roam v2 style database.

    nodes: (id, file, level, pos, title); links: (source, dest, type).
    """
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE files (file UNIQUE PRIMARY KEY, title, hash NOT NULL, atime NOT NULL, mtime NOT NULL);
        CREATE TABLE nodes (id NOT NULL PRIMARY KEY, file NOT NULL, level NOT NULL, pos NOT NULL,
                            todo, priority, scheduled text, deadline text, title, properties, olp);
        CREATE TABLE aliases (node_id NOT NULL, alias);
        CREATE TABLE refs (node_id NOT NULL, ref NOT NULL, type NOT NULL);
        CREATE TABLE tags (node_id NOT NULL, tag);
        CREATE TABLE links (pos NOT NULL, source NOT NULL, dest NOT NULL, type NOT NULL, properties NOT NULL);
    """)
    conn.executemany(
        "INSERT INTO nodes (id, file, level, pos, title) VALUES (?, ?, ?, ?, ?)",
        [(q(i), q(str(f)), lvl, pos, q(t)) for i, f, lvl, pos, t in nodes],
    )
    conn.executemany(
        "INSERT INTO links (pos, source, dest, type, properties) VALUES (?, ?, ?, ?, '(:outline nil)')",
        [(n, q(s), q(d), q(t)) for n, (s, d, t) in enumerate(links, start=1)],
    )
    conn.executemany("INSERT INTO aliases VALUES (?, ?)", [(q(i), q(a)) for i, a in aliases])
    conn.executemany("INSERT INTO refs VALUES (?, ?, ?)", [(q(i), q(r), q(t)) for i, r, t in refs])
    conn.commit()
    conn.close()
    return path


ROOT_ORG = f"""\
:PROPERTIES:
:ID:       {ROOT_ID}
:END:
#+title: My Note/Idea

An idea that points at [[id:{SUB_ID}][the sub section]] and at [[id:{OTHER_ID}]].
This one is gone: [[id:{MISSING_ID}][lost note]].

* Sub
:PROPERTIES:
:ID:       {SUB_ID}
:END:
Sub body, back to [[id:{ROOT_ID}][the parent]].
"""

OTHER_ORG = f"""\
:PROPERTIES:
:ID:       {OTHER_ID}
:END:
#+title: Other

Nothing to see here.
"""


@pytest.fixture
def roam_dir(tmp_path) -> Path:
    """An org-roam directory with two documents and its database."""
    notes = tmp_path / "roam"
    notes.mkdir()
    root_file = notes / "my-note.org"
    other_file = notes / "other.org"
    root_file.write_text(ROOT_ORG, encoding="utf-8")
    other_file.write_text(OTHER_ORG, encoding="utf-8")
    make_roam_db(
        notes / "org-roam.db",
        nodes=[
            (ROOT_ID, root_file, 0, 1, "My Note/Idea"),
            (SUB_ID, root_file, 1, ROOT_ORG.index("* Sub") + 1, "Sub"),
            (OTHER_ID, other_file, 0, 1, "Other"),
        ],
        links=[
            (ROOT_ID, SUB_ID, "id"),
            (ROOT_ID, OTHER_ID, "id"),
            (ROOT_ID, MISSING_ID, "id"),
            (SUB_ID, ROOT_ID, "id"),
            (OTHER_ID, "https://example.com", "https"),
        ],
        aliases=[(ROOT_ID, "The Idea")],
        refs=[(ROOT_ID, "smith2020", "cite")],
    )
    return notes


@pytest.fixture
def roam_db(roam_dir) -> Path:
    return roam_dir / "org-roam.db"


@pytest.fixture
def vault(tmp_path) -> Path:
    return tmp_path / "vault"


class FakeRenderer:
    """Renders straight from the .org text: whole file, or from the node's heading on."""

    def __init__(self, fail_ids=()):
        self.calls = []
        self.fail_ids = set(fail_ids)

    def render(self, node, identity):
        self.calls.append(node.id)
        if node.id in self.fail_ids:
            raise RenderFailure(node.id, node.title, "unsupported construct")
        text = Path(node.file).read_text(encoding="utf-8")
        if node.subtree_only:
            text = text[node.pos - 1:]
        return f"<!-- {identity.name} -->\n{text}"


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()

"""
Tests for export.py - resumable export of every node.
"""
import pytest

from conftest import OTHER_ID, ROOT_ID, SUB_ID, FakeRenderer
from roam2md.errors import RenderFailure, WriteFailed
from roam2md.export import EXPORTED, SKIPPED, Exporter, frontmatter
from roam2md.graph import load_graph
from roam2md.identity import resolve_identities
from roam2md.patcher import FILE_LINK_RE, patcher_for


@pytest.fixture
def graph(roam_db):
    return load_graph(roam_db)


@pytest.fixture
def identities(graph):
    return resolve_identities(graph)


def test_exports_one_file_per_node(graph, identities, vault, fake_renderer):
    """Root export contains the subtree inline; the subtree also gets its own file."""
    report = Exporter(fake_renderer, vault).run(graph, identities)

    root_md = vault / "My Note-Idea.md"
    sub_md = vault / "Sub.md"
    assert root_md.exists()
    assert sub_md.exists()
    assert (vault / "Other.md").exists()
    assert "Sub body" in root_md.read_text(encoding="utf-8")
    assert "Sub body" in sub_md.read_text(encoding="utf-8")
    assert "An idea" not in sub_md.read_text(encoding="utf-8")
    assert sorted(report.exported) == sorted([ROOT_ID, SUB_ID, OTHER_ID])
    assert report.skipped == []
    assert report.ok


def test_second_run_renders_nothing(graph, identities, vault, fake_renderer):
    Exporter(fake_renderer, vault).run(graph, identities)

    again = FakeRenderer()
    report = Exporter(again, vault).run(graph, identities)
    assert again.calls == []
    assert report.exported == []
    assert sorted(report.skipped) == sorted([ROOT_ID, SUB_ID, OTHER_ID])


def test_failure_aborts_and_next_run_resumes(graph, identities, vault):
    """Nodes done before the failure are kept and skipped; the failed node is retried."""
    order = [n.id for n in graph.ordered()]
    failing = order[1]

    broken = FakeRenderer(fail_ids={failing})
    with pytest.raises(RenderFailure) as exc_info:
        Exporter(broken, vault).run(graph, identities)

    assert broken.calls == order[:2]
    partial = exc_info.value.report
    assert partial.exported == order[:1]
    assert partial.failure.node_id == failing
    assert "unsupported construct" in partial.failure.error
    assert (vault / identities[order[0]].path).exists()
    assert not (vault / identities[failing].path).exists()

    fixed = FakeRenderer()
    report = Exporter(fixed, vault).run(graph, identities)
    assert fixed.calls == order[1:]
    assert report.skipped == order[:1]


def test_existing_file_is_the_only_marker(graph, identities, vault, fake_renderer):
    """Deleting an exported note makes the next run render it again."""
    Exporter(fake_renderer, vault).run(graph, identities)
    (vault / "Sub.md").unlink()

    again = FakeRenderer()
    Exporter(again, vault).run(graph, identities)
    assert again.calls == [SUB_ID]


def test_is_exported_tracks_output_file(graph, identities, vault, fake_renderer):
    exporter = Exporter(fake_renderer, vault)
    assert not exporter.is_exported(identities[SUB_ID])
    exporter.run(graph, identities)
    assert exporter.is_exported(identities[SUB_ID])
    (vault / identities[SUB_ID].path).unlink()
    assert not exporter.is_exported(identities[SUB_ID])


def test_no_temp_files_left_behind(graph, identities, vault, fake_renderer):
    Exporter(fake_renderer, vault).run(graph, identities)
    assert sorted(p.name for p in vault.iterdir()) == ["My Note-Idea.md", "Other.md", "Sub.md"]


def test_limit_leaves_rest_pending(graph, identities, vault, fake_renderer):
    report = Exporter(fake_renderer, vault, limit=1).run(graph, identities)
    assert len(report.exported) == 1
    assert len(report.pending) == 2
    assert len(fake_renderer.calls) == 1


def test_on_node_callback(graph, identities, vault, fake_renderer):
    Exporter(fake_renderer, vault).run(graph, identities)
    (vault / "Other.md").unlink()

    seen = []
    Exporter(FakeRenderer(), vault, on_node=lambda node, status: seen.append((node.id, status))).run(
        graph, identities
    )
    assert (OTHER_ID, EXPORTED) in seen
    assert (ROOT_ID, SKIPPED) in seen
    assert len(seen) == 3


def test_frontmatter(graph, identities, vault, fake_renderer):
    Exporter(fake_renderer, vault, frontmatter=True).run(graph, identities)
    text = (vault / "My Note-Idea.md").read_text(encoding="utf-8")
    assert text.startswith("---\n")
    assert f'roam_id: "{ROOT_ID}"' in text
    assert 'aliases:\n  - "The Idea"' in text
    assert 'refs:\n  - "cite:smith2020"' in text


def test_frontmatter_omits_empty_lists(graph):
    assert frontmatter(graph.nodes[OTHER_ID]) == f'---\nroam_id: "{OTHER_ID}"\n---\n\n'


def test_never_touches_source_documents(graph, identities, vault, fake_renderer, roam_dir):
    before = {p.name: p.read_bytes() for p in roam_dir.glob("*.org")}
    Exporter(fake_renderer, vault).run(graph, identities)
    assert {p.name: p.read_bytes() for p in roam_dir.glob("*.org")} == before


def test_write_failure_aborts(graph, identities, tmp_path, fake_renderer):
    blocker = tmp_path / "vault"
    blocker.write_text("not a directory")
    with pytest.raises(WriteFailed) as exc_info:
        Exporter(fake_renderer, blocker).run(graph, identities)
    assert exc_info.value.report.exported == []
    assert len(fake_renderer.calls) == 1


def test_round_trip_patched_links_point_at_exported_files(graph, identities, vault, roam_dir):
    """Every rewritten link target exists once the export has run."""
    patcher = patcher_for(graph, identities)
    patcher.patch(graph)
    Exporter(FakeRenderer(), vault).run(graph, identities)

    text = (roam_dir / "my-note.org").read_text(encoding="utf-8")
    targets = [m.group("target") for m in FILE_LINK_RE.finditer(text)]
    assert targets
    for target in targets:
        name = target[2:].replace("%20", " ").replace("%25", "%")
        assert (vault / name).exists()

import os
import re

import pytest

from livepreview import listing
from livepreview.listing import breadcrumb, build_listing, preview_for, render_listing, scan


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "b.md").write_text("# B title\nsome *markdown*", encoding="utf-8")
    (tmp_path / "A.txt").write_text("upper", encoding="utf-8")
    (tmp_path / "a.py").write_text("print('hi')\n", encoding="utf-8")
    (tmp_path / "empty.txt").write_bytes(b"")
    (tmp_path / "blob.bin").write_bytes(b"\x00\x01\x02\x03")
    (tmp_path / "paper.pdf").write_bytes(b"%PDF-1.4")
    (tmp_path / "paper.tex").write_text("\\section{x}", encoding="utf-8")
    (tmp_path / "z").mkdir()
    (tmp_path / "B").mkdir()
    return tmp_path


def _by_name(entries):
    return {e.name: e for e in entries}


def test_partitions_are_sorted_by_byte_order(tree):
    files, dirs = build_listing(tree, tree)
    assert [e.name for e in files] == sorted(
        ["b.md", "A.txt", "a.py", "empty.txt", "blob.bin", "paper.pdf", "paper.tex"],
        key=os.fsencode,
    )
    assert [e.name for e in files][:2] == ["A.txt", "a.py"]
    assert [e.name for e in dirs] == ["B", "z"]


def test_rendered_names_match_directory_contents(tree):
    html = render_listing(tree, tree)
    names = re.findall(r'<div class="filename">([^<]*)</div>', html)
    assert sorted(names) == sorted(os.listdir(tree))
    assert len(names) == len(set(names))
    assert html.index("<h2>Files</h2>") < html.index("<h2>Directories</h2>")


def test_preview_labels(tree):
    files, dirs = build_listing(tree, tree)
    entries = _by_name(files + dirs)
    assert entries["B"].preview == "Directory"
    assert entries["paper.pdf"].preview == "PDF Document"
    assert entries["paper.tex"].preview == "LaTeX Document"
    assert entries["empty.txt"].preview == "Empty File"
    assert entries["blob.bin"].preview == "BIN file"


def test_markdown_preview_is_verbatim_and_code_is_preformatted(tree):
    files, _ = build_listing(tree, tree)
    entries = _by_name(files)
    assert entries["b.md"].preview.startswith("# B title")
    assert not entries["b.md"].preformatted
    assert entries["a.py"].preformatted
    html = render_listing(tree, tree)
    assert "<pre>print(&#039;hi&#039;)\n</pre>" in html or "<pre>print(&#39;hi&#39;)\n</pre>" in html


def test_preview_is_bounded(tmp_path):
    (tmp_path / "big.txt").write_text("x" * 100_000, encoding="utf-8")
    entry = scan(tmp_path, tmp_path)[0]
    assert len(preview_for(entry).text) == listing.PREVIEW_CHARS


def test_unstatable_entry_is_kept(tmp_path):
    os.symlink(tmp_path / "missing-target", tmp_path / "dangling.md")
    files, dirs = build_listing(tmp_path, tmp_path)
    assert [e.name for e in files] == ["dangling.md"]
    assert files[0].preview == "FILE"
    assert files[0].raw_link is None
    assert dirs == []


def test_preview_failure_is_isolated(tree, monkeypatch):
    real = listing.preview_for

    def flaky(entry):
        if entry.name == "a.py":
            raise RuntimeError("disk on fire")
        return real(entry)

    monkeypatch.setattr(listing, "preview_for", flaky)
    files, dirs = build_listing(tree, tree)
    entries = _by_name(files + dirs)
    assert entries["a.py"].preview == ""
    assert entries["b.md"].preview.startswith("# B title")
    assert len(files) == 7 and len(dirs) == 2


def test_links_and_raw_links(tree):
    (tree / "with space.md").write_text("x", encoding="utf-8")
    sub = tree / "z"
    (sub / "deep.txt").write_text("deep", encoding="utf-8")
    files, dirs = build_listing(tree, tree)
    entries = _by_name(files + dirs)
    assert entries["with space.md"].link == "/with%20space.md"
    assert entries["with space.md"].raw_link == "/raw/with%20space.md"
    assert entries["z"].link == "/z"
    assert entries["z"].raw_link is None
    assert entries["paper.pdf"].raw_link is None
    assert entries["paper.pdf"].new_tab
    assert entries["blob.bin"].raw_link is None

    nested, _ = build_listing(sub, tree)
    assert nested[0].link == "/z/deep.txt"


def test_untrusted_names_are_escaped(tmp_path):
    (tmp_path / "<img src=x>.md").write_text("<script>alert(1)</script>", encoding="utf-8")
    html = render_listing(tmp_path, tmp_path)
    assert "<img src=x>" not in html
    assert "<script>alert(1)</script>" not in html
    assert "&lt;img src=x&gt;.md" in html
    assert 'href="/%3Cimg%20src%3Dx%3E.md"' in html


def test_breadcrumb_at_root(tmp_path):
    html = breadcrumb(tmp_path, tmp_path)
    assert 'Directory: <a href="/">root</a>' in html
    assert "sep" not in html


def test_breadcrumb_segments_are_cumulative(tmp_path):
    html = breadcrumb(tmp_path / "docs" / "api v2", tmp_path)
    assert '<a href="/">root</a>' in html
    assert '<a href="/docs">docs</a>' in html
    assert '<a href="/docs/api%20v2">api v2</a>' in html
    assert html.index("/docs\"") < html.index("/docs/api%20v2")


def test_unreadable_directory_raises(tmp_path):
    with pytest.raises(OSError):
        build_listing(tmp_path / "nope", tmp_path)


def test_undecodable_name_gets_link_and_label(tmp_path):
    (tmp_path / "good.md").write_text("ok", encoding="utf-8")
    open(os.fsencode(tmp_path) + b"/bad\xff.md", "wb").close()
    files, _ = build_listing(tmp_path, tmp_path)
    entries = {os.fsencode(e.name): e for e in files}
    bad = entries[b"bad\xff.md"]
    assert bad.link == "/bad%FF.md"
    assert bad.label == "bad�.md"
    assert entries[b"good.md"].preview == "ok"
    html = render_listing(tmp_path, tmp_path)
    assert "bad�.md" in html
    html.encode("utf-8")


def test_breadcrumb_with_undecodable_segment(tmp_path):
    html = breadcrumb(tmp_path / os.fsdecode(b"d\xe9j\xe0"), tmp_path)
    assert 'href="/d%E9j%E0"' in html
    html.encode("utf-8")

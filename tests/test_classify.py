import os

import pytest

from livepreview.assets import AssetMap
from livepreview.classify import Strategy, classify, image_mimetype
from livepreview.config import build_config


@pytest.fixture
def env(tmp_path):
    (tmp_path / "doc.md").write_text("x", encoding="utf-8")
    (tmp_path / "notes").write_text("x", encoding="utf-8")
    (tmp_path / "paper.tex").write_text("x", encoding="utf-8")
    (tmp_path / "a.pdf").write_bytes(b"%PDF")
    (tmp_path / "a.json").write_text("{}", encoding="utf-8")
    (tmp_path / "a.html").write_text("<p>", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    return tmp_path, AssetMap(prefix="p")


def _classify(url, root, assets, **kwargs):
    config = build_config(str(root), **kwargs)
    path = root / url.lstrip("/")
    try:
        stats = os.stat(path)
    except OSError:
        stats = None
    return classify(url, path, stats, config, assets)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("/p-bamboo.css", Strategy.INTERNAL_ASSET),
        ("/p-unknown.css", Strategy.NOT_FOUND),
        ("/events", Strategy.EVENT_STREAM),
        ("/raw/doc.md", Strategy.RAW),
        ("/cat.PNG", Strategy.IMAGE),
        ("/sub", Strategy.DIRECTORY),
        ("/a.pdf", Strategy.ALWAYS_RAW),
        ("/a.json", Strategy.ALWAYS_RAW),
        ("/a.html", Strategy.ALWAYS_RAW),
        ("/paper.tex", Strategy.LATEX),
        ("/doc.md", Strategy.MARKDOWN),
        ("/notes", Strategy.MARKDOWN),
        ("/missing.md", Strategy.NOT_FOUND),
    ],
)
def test_precedence(env, url, expected):
    root, assets = env
    assert _classify(url, root, assets) is expected


def test_raw_mode_wins_over_renderers(env):
    root, assets = env
    assert _classify("/doc.md", root, assets, raw=True) is Strategy.RAW
    assert _classify("/paper.tex", root, assets, raw=True) is Strategy.RAW
    assert _classify("/sub", root, assets, raw=True) is Strategy.DIRECTORY


def test_asset_prefix_beats_files(env):
    root, assets = env
    (root / "p-bamboo.css").write_text("fake", encoding="utf-8")
    assert _classify("/p-bamboo.css", root, assets) is Strategy.INTERNAL_ASSET


def test_image_mimetypes():
    assert image_mimetype(".jpg") == "image/jpeg"
    assert image_mimetype(".svg") == "image/svg+xml"
    assert image_mimetype(".png") == "image/png"
    assert image_mimetype(".GIF") == "image/gif"


def test_asset_prefix_is_random_per_map():
    assert AssetMap().prefix != AssetMap().prefix
    assets = AssetMap(prefix="abc")
    assert assets.href("hjs.css") == "/abc-hjs.css"
    assert assets.lookup("/abc-hjs.css").mimetype == "text/css"
    assert assets.lookup("/abc-hjs.css").path.is_file()
    assert assets.lookup("/abc-nope.css") is None

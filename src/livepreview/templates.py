"""HTML assembly for rendered pages and directory listings.

All values that come from the file system or from document metadata go
through ``SimpleTemplate`` auto-escaping (``{{value}}``); only fragments that
were built by this package are inserted raw (``{{!value}}``).
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from bottle import SimpleTemplate  # type: ignore

from livepreview.assets import AssetMap

RELOAD_SCRIPT = """<script>
(function () {
  if (!window.EventSource) return;
  var source = new EventSource("/events");
  source.onmessage = function (event) {
    if (event.data === "refresh") window.location.reload();
  };
})();
</script>"""


# ── SimpleTemplate: Page Layout ─────────────────────────────────────

_PAGE_SRC = r"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{title}}</title>
% for href in stylesheets:
<link rel="stylesheet" href="{{href}}">
% end
{{!reload_script}}
</head>
<body>
{{!navigation}}
<main class="content">{{!content}}</main>
</body>
</html>
"""

_PAGE_TPL = SimpleTemplate(source=_PAGE_SRC)


# ── SimpleTemplate: Frontmatter table ───────────────────────────────

_METADATA_SRC = r"""<div class="metadata">
<button type="button" onclick="toggleMetadata()">Toggle Metadata</button>
<table id="metadataTable" style="display:none">
<thead><tr><th>Key</th><th>Value</th></tr></thead>
<tbody>
% for key, value in rows:
<tr><td>{{key}}</td><td>{{value}}</td></tr>
% end
</tbody>
</table>
<script>
function toggleMetadata() {
  var table = document.getElementById("metadataTable");
  table.style.display = table.style.display === "none" ? "table" : "none";
}
</script>
</div>
"""

_METADATA_TPL = SimpleTemplate(source=_METADATA_SRC)


# ── SimpleTemplate: Directory listing ───────────────────────────────

_BREADCRUMB_SRC = r"""<h1 class="breadcrumb">Directory: <a href="/">root</a>\\
% for name, href in crumbs:
<span class="sep">/</span><a href="{{href}}">{{name}}</a>\\
% end
</h1>
"""

_BREADCRUMB_TPL = SimpleTemplate(source=_BREADCRUMB_SRC)

_LISTING_SRC = r"""{{!breadcrumb}}
% for heading, entries in sections:
<section class="directory-section">
<h2>{{heading}}</h2>
<div class="directory-grid">
% for e in entries:
<div class="file-item">
<a href="{{e.link}}"{{!' target="_blank"' if e.new_tab else ''}}>
<div class="preview">\\
% if e.preformatted:
<pre>{{e.preview}}</pre>\\
% else:
{{e.preview}}\\
% end
</div>
<div class="filename">{{e.label}}</div>
</a>
% if e.raw_link:
<div class="raw-link"><a href="{{e.raw_link}}" target="_blank">raw</a></div>
% end
</div>
% end
</div>
</section>
% end
"""

_LISTING_TPL = SimpleTemplate(source=_LISTING_SRC)


def stylesheets(assets: AssetMap, directory_chrome: bool) -> list[str]:
    hrefs = [assets.href("bamboo.css"), assets.href("hjs.css"), assets.href("hjs-dark.css")]
    if directory_chrome:
        hrefs.append(assets.href("directory.css"))
    return hrefs


def page(
    content: str,
    title: str,
    assets: AssetMap,
    navigation: str = "",
    directory_chrome: bool = False,
) -> str:
    """Wrap an HTML fragment in the full document shell."""
    return _PAGE_TPL.render(
        title=title,
        stylesheets=stylesheets(assets, directory_chrome),
        reload_script=RELOAD_SCRIPT,
        navigation=navigation,
        content=content,
    )


def metadata_table(metadata: Mapping[str, Any]) -> str:
    if not metadata:
        return ""
    rows = [(str(k), "" if v is None else str(v)) for k, v in metadata.items()]
    return _METADATA_TPL.render(rows=rows)


def breadcrumb(crumbs: Sequence[tuple[str, str]]) -> str:
    return _BREADCRUMB_TPL.render(crumbs=list(crumbs))


def listing(breadcrumb_html: str, sections: Sequence[tuple[str, Sequence[Any]]]) -> str:
    return _LISTING_TPL.render(breadcrumb=breadcrumb_html, sections=list(sections))


_BODY_CLOSE = re.compile(rb"</body\s*>", re.IGNORECASE)


def inject_reload_script(document: bytes) -> bytes:
    """Insert the live-reload client before the last ``</body>`` (or append it)."""
    script = RELOAD_SCRIPT.encode("utf-8")
    matches = list(_BODY_CLOSE.finditer(document))
    if not matches:
        return document + b"\n" + script
    pos = matches[-1].start()
    return document[:pos] + script + b"\n" + document[pos:]

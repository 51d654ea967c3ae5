"""Real-browser tests for the Playwright driver (RUN_BROWSER_TESTS=1)."""

from __future__ import annotations

import threading
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer

import pytest

from roam.config.settings import Settings
from roam.core.explore.runner import Explorer

INDEX = """<!doctype html>
<html><body>
  <h1>Shop</h1>
  <button id="buy" onclick="document.getElementById('out').textContent='bought'">Buy</button>
  <a id="about" href="/about.html">About us</a>
  <input name="email" type="email" placeholder="Email">
  <input name="csrf" type="hidden" value="x">
  <button id="gone" style="display:none">Hidden</button>
  <p id="out"></p>
</body></html>
"""

ABOUT = """<!doctype html>
<html><body><a id="home" href="/index.html">Home</a></body></html>
"""


@pytest.fixture
def site(tmp_path):
    (tmp_path / "index.html").write_text(INDEX)
    (tmp_path / "about.html").write_text(ABOUT)
    handler = partial(SimpleHTTPRequestHandler, directory=str(tmp_path))
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/index.html"
    server.shutdown()


@pytest.fixture
def driver():
    from roam.adapters.playwright import PlaywrightDriver

    d = PlaywrightDriver(Settings(headless=True, settle_ms=50))
    yield d
    d.shutdown()


@pytest.mark.integration
class TestPlaywrightDriver:
    def test_snapshot_reports_only_actionable_elements(self, site, driver):
        driver.open("s1", site)
        snap = driver.snapshot("s1")
        visible = {e.attributes.get("id") or e.attributes.get("name") for e in snap.elements if e.visible}
        assert {"buy", "about", "email"} <= visible
        assert "gone" not in visible
        driver.close("s1")

    def test_exploration_walks_the_site(self, site, driver):
        explorer = Explorer(driver)
        sid = explorer.start(site)
        summary = explorer.run(sid, max_steps=15)

        targets = [(r.page_key, r.target_fingerprint) for r in summary.records if r.target_fingerprint]
        assert len(targets) == len(set(targets))
        assert explorer.stats(sid).visited_pages >= 2
        typed = [r for r in summary.records if r.action == "type"]
        assert typed and typed[0].value == "test@example.com"
        explorer.end(sid)

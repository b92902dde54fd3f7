"""
End-to-end detection in a real headless Chromium, one page per detection
vector. Skipped when Playwright or its browser is not installed.
"""
import base64
import json
import time

import pytest

pytest.importorskip("playwright.sync_api")

from session import BrowsingSession, SessionError  # noqa: E402
from submanagers import DetectorScript  # noqa: E402

SITE = "https://site.example"
RESET = "<reset>"


def _b64(obj):
    return base64.b64encode(json.dumps(obj).encode("utf-8")).decode("ascii")


PAGES = {
    "/watch/dom": """
<html><head><title>Clip Page</title></head>
<body>
  <script>
    setTimeout(() => {
      const v = document.createElement("video");
      v.src = "/media/clip.mp4";
      document.body.appendChild(v);
    }, 50);
  </script>
</body></html>
""",
    "/watch/fetch": """
<html><head><title>Stream</title></head>
<body>
  <script>fetch("/hls/master.m3u8?sig=1").catch(() => {});</script>
</body></html>
""",
    "/watch/xhr": """
<html><head><title>Xhr</title></head>
<body>
  <script>
    const x = new XMLHttpRequest();
    x.open("GET", "/hls/xhr.m3u8");
    x.send();
  </script>
</body></html>
""",
    "/watch/mse": """
<html><head><title>Mse</title></head>
<body>
  <video id="v"></video>
  <script>
    fetch("/hls/mse.m3u8").catch(() => {}).then(() => {
      document.getElementById("v").src = URL.createObjectURL(new MediaSource());
    });
  </script>
</body></html>
""",
    "/watch/ld": """
<html><head><title>Ld</title>
<script type="application/ld+json">
{"@context": "https://schema.org", "@type": "VideoObject", "name": "Ld",
 "contentUrl": "/media/ld.mp4", "embedUrl": "https://player.example/embed/1"}
</script>
</head><body><p>article</p></body></html>
""",
    "/watch/deep": """
<html><head><title>Deep</title></head>
<body>
  <script>
    var playerSetup = "%s";
    var unrelatedBlob = "%s";
  </script>
</body></html>
""" % (
        _b64({"file": "/rel/playlist.m3u8", "note": "relative manifest path for the player"}),
        _b64({"poster": "/img/poster.jpg", "note": "nothing playable in this payload at all"}),
    ),
    "/watch/junk": """
<html><head><title>Junk</title></head>
<body>
  <script>
    const v = document.createElement("video");
    v.src = "blob:https://site.example/0b1c";
    document.body.appendChild(v);
    const d = document.createElement("video");
    d.setAttribute("src", "data:video/mp4;base64,AAAA");
    document.body.appendChild(d);
    setTimeout(() => fetch("/hls/after.m3u8").catch(() => {}), 100);
  </script>
</body></html>
""",
    "/watch/dedup": """
<html><head><title>Dedup</title></head>
<body>
  <script>
    const same = location.origin + "/hls/same.m3u8";
    fetch(same).catch(() => {});
    fetch(same).catch(() => {});
    const x = new XMLHttpRequest();
    x.open("GET", same);
    const v = document.createElement("video");
    v.src = same;
    document.body.appendChild(v);
    setTimeout(() => fetch("/hls/last.m3u8").catch(() => {}), 100);
  </script>
</body></html>
""",
    "/watch/click": """
<html><head><title>Episodes</title></head>
<body>
  <div class="player-shell"><button id="next">Next</button></div>
  <script>
    fetch("/hls/one.m3u8").catch(() => {});
    document.getElementById("next").addEventListener("click", () => {
      fetch("/hls/two.m3u8").catch(() => {});
    });
  </script>
</body></html>
""",
}


class LocalSiteSession(BrowsingSession):
    """Serves PAGES for SITE without touching the network and records raw binding calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.raw = []

    def _install(self, context):
        super()._install(context)

        def fulfill(route, request):
            path = request.url[len(SITE):]
            body = PAGES.get(path.split("?", 1)[0])
            if body is None:
                route.fulfill(status=404, body="")
            else:
                route.fulfill(status=200, content_type="text/html", body=body)

        def not_found(route, request):
            route.fulfill(status=404, body="")

        context.route(SITE + "/watch/**", fulfill)
        for prefix in ("/hls/**", "/media/**", "/rel/**", "/img/**"):
            context.route(SITE + prefix, not_found)

    def _on_candidate_binding(self, source, payload=None):
        self.raw.append(payload)
        super()._on_candidate_binding(source, payload)

    def _on_reset_binding(self, source, payload=None):
        self.raw.append(RESET)
        super()._on_reset_binding(source, payload)


@pytest.fixture
def open_site(logger):
    opened = []

    def _open(path, detector=None):
        found = []
        cfg = BrowsingSession.Config(headless=True)
        session = LocalSiteSession(SITE + path, on_video_found=found.append,
                                   config=cfg, detector=detector, logger=logger)
        opened.append(session)
        try:
            session.open()
        except SessionError as e:
            pytest.skip(f"Chromium not available: {e}")
        return session, found

    yield _open
    for s in opened:
        s.close()


def pump_until(session, predicate, timeout_s=10.0):
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        session.pump()
        if predicate():
            return True
        session.page.wait_for_timeout(100)
    session.pump()
    return predicate()


# ---------------- vectors ----------------

def test_dom_video_is_detected(open_site):
    session, found = open_site("/watch/dom")
    assert pump_until(session, lambda: found)
    assert found[0].video_url == SITE + "/media/clip.mp4"
    assert found[0].page_title == "Clip Page"


def test_fetch_manifest_is_detected(open_site):
    session, found = open_site("/watch/fetch")
    assert pump_until(session, lambda: found)
    assert found[0].video_url == SITE + "/hls/master.m3u8?sig=1"
    assert found[0].page_title == "Stream"


def test_xhr_manifest_is_detected(open_site):
    session, found = open_site("/watch/xhr")
    assert pump_until(session, lambda: found)
    assert session.raw == ["/hls/xhr.m3u8"]
    assert found[0].video_url == SITE + "/hls/xhr.m3u8"


def test_media_source_reports_last_manifest(open_site):
    # manifests are remembered but not reported by the network hooks here
    detector = DetectorScript(DetectorScript.Config(media_extensions=["mp4"], manifest_extensions=["m3u8"]))
    session, found = open_site("/watch/mse", detector=detector)
    assert pump_until(session, lambda: found)
    assert session.raw == ["/hls/mse.m3u8"]
    assert found[0].video_url == SITE + "/hls/mse.m3u8"


def test_structured_data_urls_are_reported(open_site):
    session, found = open_site("/watch/ld")
    assert pump_until(session, lambda: len(session.raw) >= 2)
    assert session.raw == ["/media/ld.mp4", "https://player.example/embed/1"]
    assert [v.video_url for v in found] == [SITE + "/media/ld.mp4"]


def test_base64_global_yields_relative_manifest(open_site):
    session, found = open_site("/watch/deep")
    assert pump_until(session, lambda: found)
    assert session.raw == ["/rel/playlist.m3u8"]
    assert found[0].video_url == SITE + "/rel/playlist.m3u8"


# ---------------- filtering ----------------

def test_blob_and_data_sources_are_never_sent(open_site):
    session, found = open_site("/watch/junk")
    assert pump_until(session, lambda: found)
    assert session.raw == ["/hls/after.m3u8"]
    assert found[0].video_url == SITE + "/hls/after.m3u8"


def test_each_url_is_sent_once(open_site):
    session, _found = open_site("/watch/dedup")
    assert pump_until(session, lambda: "/hls/last.m3u8" in session.raw)
    assert session.raw == [SITE + "/hls/same.m3u8", "/hls/last.m3u8"]


# ---------------- reset signal ----------------

def test_player_click_resets_before_next_candidate(open_site):
    session, found = open_site("/watch/click")
    assert pump_until(session, lambda: found)
    session.page.click("#next")
    assert pump_until(session, lambda: len(found) == 2)

    assert session.raw == ["/hls/one.m3u8", RESET, "/hls/two.m3u8"]
    assert [v.video_url for v in found] == [SITE + "/hls/one.m3u8", SITE + "/hls/two.m3u8"]


def test_wait_for_video_then_teardown(open_site):
    session, _found = open_site("/watch/dom")
    video = session.wait_for_video(timeout_s=15.0)
    assert video is not None and video.video_url == SITE + "/media/clip.mp4"
    session.close()
    assert session.closed

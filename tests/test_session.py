import threading

import pytest

from session import BrowsingSession, SessionError

TARGET = "https://site.example/watch/1"


# ---------------- fake Playwright objects ----------------

class FakeFrame:
    def __init__(self, page, url, parent=None):
        self.page = page
        self.url = url
        self.parent_frame = parent


class FakePage:
    def __init__(self, context, url="about:blank"):
        self.context = context
        self.url = url
        self.main_frame = FakeFrame(self, url)
        self.handlers = {}
        self.gotos = []
        self.page_title = ""
        self.closed = False
        self.on_wait = None

    def on(self, event, cb):
        self.handlers.setdefault(event, []).append(cb)

    def emit(self, event, arg):
        for cb in self.handlers.get(event, []):
            cb(arg)

    def goto(self, url, **kwargs):
        self.gotos.append(url)
        self.context.events.append(f"goto {url}")
        self.url = url
        self.main_frame.url = url
        self.emit("framenavigated", self.main_frame)

    def title(self):
        return self.page_title

    def is_closed(self):
        return self.closed

    def close(self):
        self.closed = True

    def wait_for_timeout(self, ms):
        if self.on_wait is not None:
            self.on_wait()


class FakeContext:
    def __init__(self, events):
        self.events = events
        self.init_scripts = []
        self.bindings = {}
        self.routes = []
        self.handlers = {}
        self.pages = []
        self.closed = False

    def add_init_script(self, script):
        self.init_scripts.append(script)

    def expose_binding(self, name, cb):
        self.bindings[name] = cb

    def route(self, url, handler):
        self.routes.append((url, handler))

    def on(self, event, cb):
        self.handlers.setdefault(event, []).append(cb)

    def emit(self, event, arg):
        for cb in self.handlers.get(event, []):
            cb(arg)

    def new_page(self):
        page = FakePage(self)
        self.pages.append(page)
        return page

    def close(self):
        self.closed = True
        self.events.append("context.close")


class FakeBrowser:
    def __init__(self, events):
        self.events = events
        self.context = FakeContext(events)
        self.closed = False

    def new_context(self, **kwargs):
        return self.context

    def close(self):
        self.closed = True
        self.events.append("browser.close")


class FakeBrowserType:
    def __init__(self, events, fail=False):
        self.events = events
        self.fail = fail
        self.browser = None
        self.headless = None

    def launch(self, headless=False):
        if self.fail:
            raise RuntimeError("Executable doesn't exist")
        self.headless = headless
        self.browser = FakeBrowser(self.events)
        return self.browser


class FakePlaywright:
    def __init__(self, fail=False):
        self.events = []
        self.chromium = FakeBrowserType(self.events, fail=fail)
        self.stopped = False

    def start(self):
        return self

    def stop(self):
        self.stopped = True
        self.events.append("playwright.stop")


class FakeRequest:
    def __init__(self, url, frame, navigation=True):
        self.url = url
        self.frame = frame
        self._navigation = navigation

    def is_navigation_request(self):
        return self._navigation


class FakeRoute:
    def __init__(self):
        self.outcome = None

    def abort(self):
        self.outcome = "abort"

    def continue_(self):
        self.outcome = "continue"


# ---------------- fixtures ----------------

@pytest.fixture
def pw():
    return FakePlaywright()


@pytest.fixture
def found():
    return []


@pytest.fixture
def session(pw, found, logger):
    s = BrowsingSession(TARGET, on_video_found=found.append, logger=logger, playwright_factory=lambda: pw)
    s.open()
    yield s
    s.close()


def ctx(pw):
    return pw.chromium.browser.context


def candidate(session, payload, frame=None):
    page = session.page
    ctx_ = page.context
    ctx_.bindings["videoPlayback"]({"page": page, "frame": frame or page.main_frame}, payload)


def reset(session):
    page = session.page
    page.context.bindings["resetDetector"]({"page": page, "frame": page.main_frame}, True)


# ---------------- open ----------------

def test_open_installs_script_and_bindings(session, pw):
    c = ctx(pw)
    assert len(c.init_scripts) == 1
    assert "videoPlayback" in c.init_scripts[0]
    assert set(c.bindings) == {"videoPlayback", "resetDetector"}
    assert "page" in c.handlers
    assert session.page.gotos == [TARGET]
    assert session.current_url == TARGET


def test_launch_failure_raises_session_error(logger):
    pw = FakePlaywright(fail=True)
    s = BrowsingSession(TARGET, logger=logger, playwright_factory=lambda: pw)
    with pytest.raises(SessionError):
        s.open()
    assert pw.stopped
    assert s.closed


# ---------------- binding dispatch ----------------

def test_candidate_is_resolved_on_pump(session, found):
    session.page.page_title = "Episode 1"
    candidate(session, "/media/x.m3u8")
    assert found == []

    accepted = session.pump()

    assert [v.video_url for v in found] == ["https://site.example/media/x.m3u8"]
    assert found[0].page_title == "Episode 1"
    assert accepted == found


def test_only_first_candidate_per_page_view(session, found):
    for u in ("/a.m3u8", "/b.m3u8", "https://cdn.example/c.mp4"):
        candidate(session, u)
    session.pump()
    assert len(found) == 1


def test_reset_binding_allows_one_more(session, found):
    candidate(session, "/a.m3u8")
    reset(session)
    candidate(session, "/b.m3u8")
    candidate(session, "/c.m3u8")
    session.pump()
    assert [v.video_url.rsplit("/", 1)[-1] for v in found] == ["a.m3u8", "b.m3u8"]


def test_missing_title_uses_placeholder(session, found):
    candidate(session, "/a.mp4")
    session.pump()
    assert found[0].page_title == "Untitled Video"


def test_malformed_payload_is_dropped(session, found, logger):
    candidate(session, 42)
    session.pump()
    assert found == []
    assert logger.contains("Dropped malformed binding message")


def test_iframe_candidate_resolves_against_frame(session, found):
    frame = FakeFrame(session.page, "https://player.example/embed/9", parent=session.page.main_frame)
    candidate(session, "v.m3u8", frame=frame)
    session.pump()
    assert found[0].video_url == "https://player.example/embed/v.m3u8"


@pytest.mark.parametrize("frame_url", ["about:blank", "about:srcdoc", ""])
def test_blank_iframe_candidate_resolves_against_page(session, found, frame_url):
    frame = FakeFrame(session.page, frame_url, parent=session.page.main_frame)
    candidate(session, "/hls/master.m3u8", frame=frame)
    session.pump()
    assert [v.video_url for v in found] == ["https://site.example/hls/master.m3u8"]


# ---------------- navigation ----------------

def test_navigation_commit_reopens_gate(session, found):
    candidate(session, "/a.mp4")
    session.pump()
    session.page.goto("https://site.example/watch/2")
    candidate(session, "/b.mp4")
    session.pump()
    assert [v.video_url for v in found] == [
        "https://site.example/a.mp4",
        "https://site.example/b.mp4",
    ]


def test_fragment_change_keeps_gate_closed(session, found):
    candidate(session, "/a.mp4")
    session.pump()
    session.page.goto(TARGET + "#t=30")
    candidate(session, "/b.mp4")
    session.pump()
    assert len(found) == 1


def test_subframe_navigation_keeps_gate_closed(session, found):
    candidate(session, "/a.mp4")
    session.pump()
    session.page.emit("framenavigated", FakeFrame(session.page, "https://ads.example/", parent=session.page.main_frame))
    candidate(session, "/b.mp4")
    session.pump()
    assert len(found) == 1


def test_request_navigation_runs_on_pump(session):
    session.request_navigation("https://site.example/other")
    assert session.page.gotos == [TARGET]
    session.pump()
    assert session.page.gotos == [TARGET, "https://site.example/other"]


# ---------------- direct video files ----------------

def test_route_matches_video_extensions_only(session, pw):
    matcher, _handler = ctx(pw).routes[0]
    assert matcher("https://cdn.example/a.mp4")
    assert matcher("https://cdn.example/live.m3u8?x=1")
    assert not matcher("https://site.example/watch/1")


def test_direct_navigation_to_video_file(session, pw, found):
    _matcher, handler = ctx(pw).routes[0]
    route = FakeRoute()
    handler(route, FakeRequest("https://cdn.example/a.mp4", session.page.main_frame))
    assert route.outcome == "abort"
    session.pump()
    assert [v.video_url for v in found] == ["https://cdn.example/a.mp4"]


def test_direct_navigation_bypasses_closed_gate(session, pw, found):
    candidate(session, "/first.m3u8")
    session.pump()
    _matcher, handler = ctx(pw).routes[0]
    handler(FakeRoute(), FakeRequest("https://cdn.example/b.mov", session.page.main_frame))
    session.pump()
    assert [v.video_url for v in found] == [
        "https://site.example/first.m3u8",
        "https://cdn.example/b.mov",
    ]


def test_media_subresource_requests_continue(session, pw, found):
    _matcher, handler = ctx(pw).routes[0]
    route = FakeRoute()
    handler(route, FakeRequest("https://cdn.example/a.mp4", session.page.main_frame, navigation=False))
    assert route.outcome == "continue"
    session.pump()
    assert found == []


def test_video_popup_is_accepted_and_closed(session, pw, found):
    popup = FakePage(ctx(pw), url="https://cdn.example/pop.m4v")
    ctx(pw).emit("page", popup)
    session.pump()
    assert [v.video_url for v in found] == ["https://cdn.example/pop.m4v"]
    assert popup.closed


def test_other_popups_are_closed(session, pw, found):
    popup = FakePage(ctx(pw), url="https://ads.example/landing")
    ctx(pw).emit("page", popup)
    session.pump()
    assert found == []
    assert popup.closed


def test_blank_popup_waits_for_url(session, pw, found):
    popup = FakePage(ctx(pw))
    ctx(pw).emit("page", popup)
    session.pump()
    assert not popup.closed
    popup.url = "https://cdn.example/late.mp4"
    session.pump()
    assert popup.closed
    assert [v.video_url for v in found] == ["https://cdn.example/late.mp4"]


def test_bindings_from_popups_are_ignored(session, pw, found):
    popup = FakePage(ctx(pw), url="https://ads.example/")
    ctx(pw).bindings["videoPlayback"]({"page": popup, "frame": popup.main_frame}, "/ad.mp4")
    session.pump()
    assert found == []


# ---------------- run loop ----------------

def test_run_pumps_until_stopped(session, found):
    stop = threading.Event()
    candidate(session, "/a.mp4")
    session.page.on_wait = stop.set
    session.run(stop)
    assert len(found) == 1


def test_run_returns_immediately_when_stopped(session):
    stop = threading.Event()
    stop.set()
    session.run(stop)


def test_wait_for_video(session, found):
    candidate(session, "/a.mp4")
    video = session.wait_for_video(timeout_s=1.0)
    assert video is not None and video.video_url == "https://site.example/a.mp4"
    assert found == [video]


def test_wait_for_video_times_out(session):
    assert session.wait_for_video(timeout_s=0.05) is None


def test_wait_for_video_does_not_return_earlier_video(session, found):
    candidate(session, "/a.mp4")
    assert session.wait_for_video(timeout_s=1.0) is not None

    assert session.wait_for_video(timeout_s=0.05) is None
    assert len(found) == 1


# ---------------- teardown ----------------

def test_close_blanks_page_before_closing(pw, found, logger):
    s = BrowsingSession(TARGET, on_video_found=found.append, logger=logger, playwright_factory=lambda: pw)
    s.open()
    page = s.page
    s.close()

    assert page.gotos[-1] == "about:blank"
    assert pw.events[-4:] == ["goto about:blank", "context.close", "browser.close", "playwright.stop"]
    assert s.closed and s.page is None


def test_close_is_idempotent(pw, logger):
    s = BrowsingSession(TARGET, logger=logger, playwright_factory=lambda: pw)
    s.open()
    s.close()
    n = len(pw.events)
    s.close()
    assert len(pw.events) == n


def test_no_detection_after_teardown(pw, found, logger):
    s = BrowsingSession(TARGET, on_video_found=found.append, logger=logger, playwright_factory=lambda: pw)
    s.open()
    page = s.page
    s.close()
    ctx(pw).bindings["videoPlayback"]({"page": page, "frame": page.main_frame}, "/late.mp4")
    assert s.pump() == []
    assert found == []


def test_context_manager(pw, logger):
    with BrowsingSession(TARGET, logger=logger, playwright_factory=lambda: pw) as s:
        assert s.page is not None
    assert s.closed
    assert pw.stopped

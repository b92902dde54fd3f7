# ========================================================
# ================  session.py  ==========================
# ========================================================
from __future__ import annotations

import collections
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple
from urllib.parse import urldefrag, urlparse

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from config import DEFAULT_BROWSER, DEFAULT_HEADLESS
from loggers import DEBUG_LOGGER
from models import (
    CANDIDATE_BINDING,
    RESET_BINDING,
    FoundVideo,
    has_video_extension,
    parse_message,
)
from submanagers import DetectionCoordinator, DetectorScript


class SessionError(RuntimeError):
    """The browser behind a BrowsingSession could not be started."""


def _is_web_url(url: Optional[str]) -> bool:
    return bool(url) and urlparse(url).scheme in ("http", "https")


def _is_fragment_change(prev: Optional[str], new: str) -> bool:
    if not prev or prev == new:
        return False
    return urldefrag(prev)[0] == urldefrag(new)[0]


class BrowsingSession:
    """
    One Playwright browser bound to one target URL, with the video detector
    installed and its bindings wired to a DetectionCoordinator.

    Threading: every Playwright object and the coordinator belong to the
    thread that calls ``open``. Binding callbacks and page events only
    append to an inbox; ``pump`` drains it in arrival order on that thread,
    so gate decisions are serialized without locks. Other threads talk to
    the session through ``request_navigation`` and a stop event.
    """

    @dataclass
    class Config:
        browser: str = DEFAULT_BROWSER          # chromium | firefox | webkit
        headless: bool = DEFAULT_HEADLESS
        goto_wait_until: str = "domcontentloaded"
        goto_timeout_ms: int = 30000
        viewport_width: int = 1280
        viewport_height: int = 720
        poll_ms: int = 100
        blank_url: str = "about:blank"
        teardown_timeout_ms: int = 5000
        block_popups: bool = True
        popup_grace_polls: int = 20             # polls to wait for a blank popup to get a URL

    def __init__(
        self,
        url: str,
        on_video_found: Optional[Callable[[FoundVideo], None]] = None,
        config: Optional["BrowsingSession.Config"] = None,
        detector: Optional[DetectorScript] = None,
        logger=None,
        playwright_factory: Optional[Callable[[], Any]] = None,
    ):
        self.target_url = url
        self.cfg = config or self.Config()
        self.detector = detector or DetectorScript()
        self.logger = logger or DEBUG_LOGGER
        self.coordinator = DetectionCoordinator(on_video_found, logger=self.logger)
        self._playwright_factory = playwright_factory or sync_playwright

        self._pw = None
        self._browser = None
        self._context = None
        self.page = None

        self._inbox: Deque[Tuple[str, Any, Any]] = collections.deque()
        self._pending_popups: List[Tuple[Any, int]] = []
        self._direct_urls: Set[str] = set()
        self._committed_url: Optional[str] = None
        self._cached_title: Optional[str] = None
        self._opened = False
        self._closed = False

    # ------------------------------ logging ------------------------------ #

    def _log(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.log_message(f"[BrowsingSession] {msg}")

    # ------------------------------ lifecycle ------------------------------ #

    def open(self) -> "BrowsingSession":
        if self._opened:
            return self
        self._opened = True
        self._log(f"Starting {self.cfg.browser} (headless={self.cfg.headless}) for {self.target_url}")
        try:
            self._pw = self._playwright_factory().start()
            launcher = getattr(self._pw, self.cfg.browser)
            self._browser = launcher.launch(headless=self.cfg.headless)
            self._context = self._browser.new_context(
                viewport={"width": self.cfg.viewport_width, "height": self.cfg.viewport_height},
            )
            self._install(self._context)
            self.page = self._context.new_page()
        except Exception as e:
            self._log(f"Failed to start browser: {e}")
            self.close()
            raise SessionError(f"could not start {self.cfg.browser}: {e}") from e

        self._attach_page(self.page)
        self.navigate(self.target_url)
        return self

    def _install(self, context) -> None:
        # Context-level hooks MUST run before new_page / navigation
        context.add_init_script(self.detector.source())
        context.expose_binding(self.detector.cfg.candidate_binding, self._on_candidate_binding)
        context.expose_binding(self.detector.cfg.reset_binding, self._on_reset_binding)
        context.route(has_video_extension, self._on_video_route)
        context.on("page", self._on_page_created)
        self._log("Installed detector script and bindings.")

    def _attach_page(self, page) -> None:
        page.on("framenavigated", self._on_frame_navigated)
        page.on("close", lambda _p: self._log("Page closed."))

    def close(self) -> None:
        """
        Tear down synchronously: park the page on a blank document first so
        media and network stop immediately, then close everything.
        """
        if self._closed:
            return
        self._closed = True
        self._inbox.clear()
        self._pending_popups.clear()

        page = self.page
        if page is not None:
            try:
                if not page.is_closed():
                    page.goto(self.cfg.blank_url, wait_until="commit", timeout=self.cfg.teardown_timeout_ms)
                    self._log(f"Page parked on {self.cfg.blank_url}.")
            except PlaywrightError as e:
                self._log(f"Blank navigation during teardown failed: {e}")

        for name, closer in (
            ("context", self._context.close if self._context else None),
            ("browser", self._browser.close if self._browser else None),
            ("playwright", self._pw.stop if self._pw else None),
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception as e:
                self._log(f"Failed to close {name}: {e}")

        self.page = None
        self._context = None
        self._browser = None
        self._pw = None
        self._log("Session closed.")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "BrowsingSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------ page state ------------------------------ #

    @property
    def current_url(self) -> Optional[str]:
        if self.page is not None:
            return self.page.url
        return self._committed_url or self.target_url

    def title(self) -> Optional[str]:
        if self.page is None:
            return self._cached_title
        try:
            t = self.page.title()
        except PlaywrightError as e:
            self._log(f"Could not read page title: {e}")
            return self._cached_title
        if t and t.strip():
            self._cached_title = t
            return t
        return self._cached_title

    def navigate(self, url: str) -> None:
        if self.page is None or self._closed:
            return
        self._log(f"Navigating to {url}")
        try:
            self.page.goto(url, wait_until=self.cfg.goto_wait_until, timeout=self.cfg.goto_timeout_ms)
        except PlaywrightError as e:
            self._log(f"goto {url} did not finish (wait_until={self.cfg.goto_wait_until}): {e}")

    def request_navigation(self, url: str) -> None:
        """Thread-safe: navigate on the session thread at the next pump."""
        self._enqueue("navigate", url, None)

    # ------------------------------ event intake ------------------------------ #

    def _enqueue(self, kind: str, a: Any, b: Any) -> None:
        if self._closed:
            return
        self._inbox.append((kind, a, b))

    def _source_url(self, source: Dict[str, Any]) -> Optional[str]:
        """Base URL for a candidate: the sending frame, or the page when that frame has no web URL."""
        frame = (source or {}).get("frame")
        url = frame.url if frame is not None else None
        if _is_web_url(url):
            return url
        return self.current_url

    def _from_other_page(self, source: Dict[str, Any]) -> bool:
        page = (source or {}).get("page")
        return page is not None and self.page is not None and page != self.page

    def _on_candidate_binding(self, source: Dict[str, Any], payload: Any = None) -> None:
        if self._from_other_page(source):
            return
        self._enqueue("message", parse_message(CANDIDATE_BINDING, payload), self._source_url(source))

    def _on_reset_binding(self, source: Dict[str, Any], payload: Any = None) -> None:
        if self._from_other_page(source):
            return
        self._enqueue("message", parse_message(RESET_BINDING, payload), None)

    def _on_frame_navigated(self, frame) -> None:
        if frame.parent_frame is not None:
            return
        self._enqueue("commit", frame.url, None)

    def _on_video_route(self, route, request) -> None:
        try:
            is_nav = request.is_navigation_request()
            frame = request.frame
            is_main = frame.parent_frame is None
            page = frame.page
        except PlaywrightError:
            route.continue_()
            return
        if not (is_nav and is_main):
            route.continue_()
            return
        page_url = self.current_url if page == self.page else None
        self._log(f"Direct video navigation intercepted: {request.url}")
        self._enqueue("direct", request.url, page_url)
        route.abort()

    def _on_page_created(self, page) -> None:
        if self.page is None or page == self.page:
            return
        self._enqueue("popup", page, None)

    # ------------------------------ processing ------------------------------ #

    def pump(self) -> List[FoundVideo]:
        """Apply queued events in arrival order. Returns videos accepted."""
        found: List[FoundVideo] = []
        while self._inbox and not self._closed:
            kind, a, b = self._inbox.popleft()
            video: Optional[FoundVideo] = None
            if kind == "message":
                if a is None:
                    self._log("Dropped malformed binding message.")
                    continue
                video = self.coordinator.handle(a, b, self.title)
            elif kind == "commit":
                self._on_commit(a)
            elif kind == "direct":
                video = self._accept_direct(a, b)
            elif kind == "popup":
                self._pending_popups.append((a, 0))
            elif kind == "navigate":
                self.navigate(a)
            if video is not None:
                found.append(video)
        self._process_popups(found)
        return found

    def _on_commit(self, url: str) -> None:
        prev = self._committed_url
        self._committed_url = url
        if _is_fragment_change(prev, url):
            return
        self._cached_title = None
        self._direct_urls.clear()
        self.coordinator.on_navigation_commit(url)

    def _accept_direct(self, url: str, page_url: Optional[str]) -> Optional[FoundVideo]:
        if url in self._direct_urls:
            return None
        self._direct_urls.add(url)
        return self.coordinator.accept_direct(url, page_url or self.current_url, self.title)

    def _process_popups(self, found: List[FoundVideo]) -> None:
        if not self._pending_popups:
            return
        still_pending: List[Tuple[Any, int]] = []
        for popup, polls in self._pending_popups:
            try:
                url = popup.url
            except PlaywrightError:
                continue
            if has_video_extension(url):
                video = self._accept_direct(url, None)
                if video is not None:
                    found.append(video)
            elif url in ("", "about:blank") and polls < self.cfg.popup_grace_polls:
                still_pending.append((popup, polls + 1))
                continue
            if self.cfg.block_popups:
                self._log(f"Closing pop-up {url or '(blank)'}")
                try:
                    popup.close()
                except PlaywrightError as e:
                    self._log(f"Failed to close pop-up: {e}")
        self._pending_popups = still_pending

    def run(
        self,
        stop_event: threading.Event,
        poll_ms: Optional[int] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        """
        Pump Playwright events on this thread until ``stop_event`` is set,
        the page closes or ``timeout_s`` elapses (None = no limit).
        """
        poll_ms = poll_ms or self.cfg.poll_ms
        deadline = time.monotonic() + timeout_s if timeout_s else None
        while not stop_event.is_set() and not self._closed:
            if self.page is None or self.page.is_closed():
                self._log("Page is gone; leaving event loop.")
                break
            try:
                self.page.wait_for_timeout(poll_ms)
            except PlaywrightError as e:
                self._log(f"Event loop interrupted: {e}")
                break
            self.pump()
            if deadline is not None and time.monotonic() >= deadline:
                break

    def wait_for_video(self, timeout_s: Optional[float] = None) -> Optional[FoundVideo]:
        """Run until the first video is accepted (CLI helper)."""
        stop = threading.Event()
        original = self.coordinator.on_video_found
        first: List[FoundVideo] = []

        def _on_found(video: FoundVideo) -> None:
            if not first:
                first.append(video)
            stop.set()
            if original is not None:
                original(video)

        self.coordinator.on_video_found = _on_found
        try:
            self.pump()
            self.run(stop, timeout_s=timeout_s)
        finally:
            self.coordinator.on_video_found = original
        return first[0] if first else None

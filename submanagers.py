from __future__ import annotations

import json
import re
import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

import requests
from bs4 import BeautifulSoup

from config import DB_PATH
from loggers import DEBUG_LOGGER
from models import (
    CANDIDATE_BINDING,
    RESET_BINDING,
    CandidateMessage,
    CandidateURL,
    FoundVideo,
    Message,
    ResetGateMessage,
    SourceVector,
    TitleSource,
    UnresolvableURLError,
)

_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0 Safari/537.36"
)


# ======================================================================
# DetectorScript
# ======================================================================

_DETECTOR_TEMPLATE = r"""
(() => {
  if (window.__scrimmDetectorInstalled) return;
  window.__scrimmDetectorInstalled = true;

  const CFG = __SCRIMM_CONFIG__;
  const foundUrls = new Set();
  let lastManifestUrl = null;

  const markerRx = new RegExp("\\.(" + CFG.mediaExtensions.join("|") + ")(\\?|#|$)", "i");
  const manifestRx = new RegExp("\\.(" + CFG.manifestExtensions.join("|") + ")(\\?|#|$)", "i");
  const manifestRefRx = new RegExp("\\.(" + CFG.manifestExtensions.join("|") + ")", "i");
  const junkPrefixes = CFG.junkPrefixes.map(p => p.toLowerCase());
  const keywords = CFG.playerKeywords.map(k => k.toLowerCase());

  function debug(...args) {
    if (!CFG.debug) return;
    try { console.log("[ScrimmDetector]", ...args); } catch (e) {}
  }

  // fire-and-forget; the page never learns what the host did
  function post(name, payload) {
    try {
      const fn = window[name];
      if (typeof fn !== "function") return;
      const p = fn(payload);
      if (p && typeof p.catch === "function") p.catch(() => {});
    } catch (e) {}
  }

  function isJunk(u) {
    const low = u.toLowerCase();
    return junkPrefixes.some(p => low.startsWith(p));
  }

  function sendVideoUrl(urlString, vector) {
    if (!urlString || typeof urlString !== "string") return;
    const u = urlString.trim();
    if (!u || isJunk(u)) return;
    if (foundUrls.has(u)) return;
    foundUrls.add(u);
    debug("candidate", vector, u);
    post(CFG.candidateBinding, u);
  }

  function sendReset() {
    debug("reset");
    post(CFG.resetBinding, true);
  }

  function toUrlString(input) {
    try {
      if (typeof input === "string") return input;
      if (typeof URL !== "undefined" && input instanceof URL) return input.href;
      if (input && typeof input.url === "string") return input.url;
    } catch (e) {}
    return null;
  }

  // ---------------- network interception ----------------
  function inspectRequest(u, vector) {
    if (!u) return;
    if (manifestRx.test(u)) lastManifestUrl = u;
    if (markerRx.test(u)) sendVideoUrl(u, vector);
  }

  try {
    const origFetch = window.fetch;
    if (typeof origFetch === "function") {
      window.fetch = function(input, init) {
        try { inspectRequest(toUrlString(input), "network-fetch"); } catch (e) {}
        return origFetch.apply(this, arguments);
      };
    }
  } catch (e) {}

  try {
    const origOpen = XMLHttpRequest.prototype.open;
    XMLHttpRequest.prototype.open = function(method, url) {
      try { inspectRequest(toUrlString(url), "network-xhr"); } catch (e) {}
      return origOpen.apply(this, arguments);
    };
  } catch (e) {}

  // ---------------- media source binding ----------------
  function isMediaSource(obj) {
    try {
      if (typeof MediaSource !== "undefined" && obj instanceof MediaSource) return true;
      if (typeof ManagedMediaSource !== "undefined" && obj instanceof ManagedMediaSource) return true;
    } catch (e) {}
    return false;
  }

  function emitManifest() {
    if (lastManifestUrl) sendVideoUrl(lastManifestUrl, "media-source-binding");
  }

  try {
    const origCreateObjectURL = URL.createObjectURL;
    if (typeof origCreateObjectURL === "function") {
      URL.createObjectURL = function(obj) {
        const out = origCreateObjectURL.apply(this, arguments);
        try { if (isMediaSource(obj)) emitManifest(); } catch (e) {}
        return out;
      };
    }
  } catch (e) {}

  try {
    const proto = HTMLMediaElement.prototype;
    const srcDesc = Object.getOwnPropertyDescriptor(proto, "src");
    if (srcDesc && srcDesc.set) {
      Object.defineProperty(proto, "src", {
        configurable: true,
        enumerable: srcDesc.enumerable,
        get: srcDesc.get,
        set(value) {
          try {
            const s = String(value == null ? "" : value);
            if (s.toLowerCase().startsWith("blob:")) emitManifest();
            else if (this.tagName === "VIDEO") sendVideoUrl(s, "dom-mutation");
          } catch (e) {}
          return srcDesc.set.call(this, value);
        }
      });
    }
    const objDesc = Object.getOwnPropertyDescriptor(proto, "srcObject");
    if (objDesc && objDesc.set) {
      Object.defineProperty(proto, "srcObject", {
        configurable: true,
        enumerable: objDesc.enumerable,
        get: objDesc.get,
        set(value) {
          try { if (isMediaSource(value)) emitManifest(); } catch (e) {}
          return objDesc.set.call(this, value);
        }
      });
    }
  } catch (e) {}

  // ---------------- DOM observation ----------------
  function mediaSrc(el) {
    try {
      if (!el || el.nodeType !== 1) return null;
      if (el.tagName === "VIDEO") return el.currentSrc || el.src || el.getAttribute("src");
      if (el.tagName === "SOURCE") {
        const parent = el.parentElement;
        if (parent && parent.tagName === "AUDIO") return null;
        return el.src || el.getAttribute("src");
      }
    } catch (e) {}
    return null;
  }

  function inspectElement(el) {
    const s = mediaSrc(el);
    if (!s) return;
    if (s.toLowerCase().startsWith("blob:")) emitManifest();
    else sendVideoUrl(s, "dom-mutation");
  }

  function inspectTree(node) {
    if (!node || node.nodeType !== 1) return;
    inspectElement(node);
    try {
      if (node.querySelectorAll) node.querySelectorAll("video, source").forEach(inspectElement);
    } catch (e) {}
  }

  try {
    const observer = new MutationObserver(mutations => {
      for (const m of mutations) {
        if (m.type === "attributes") inspectElement(m.target);
        else if (m.type === "childList") m.addedNodes.forEach(inspectTree);
      }
    });
    observer.observe(document, {
      childList: true,
      subtree: true,
      attributes: true,
      attributeFilter: ["src"]
    });
  } catch (e) {}

  document.addEventListener("play", ev => {
    try { inspectElement(ev.target); } catch (e) {}
  }, true);

  // ---------------- structured data / deep scan ----------------
  function isVideoObject(node) {
    const t = node["@type"];
    const types = Array.isArray(t) ? t : [t];
    return types.some(x => typeof x === "string" && x.toLowerCase().includes("video"));
  }

  function collectStructuredUrls(node, out, depth) {
    if (node == null || depth > CFG.structuredDataMaxDepth) return;
    if (Array.isArray(node)) {
      node.forEach(n => collectStructuredUrls(n, out, depth + 1));
      return;
    }
    if (typeof node !== "object") return;
    const videoish = isVideoObject(node);
    for (const key of CFG.structuredDataKeys) {
      const v = node[key];
      if (typeof v === "string" && (videoish || markerRx.test(v))) out.push(v);
    }
    for (const k in node) {
      const v = node[k];
      if (v && typeof v === "object") collectStructuredUrls(v, out, depth + 1);
    }
  }

  function scanStructuredData() {
    let blocks = [];
    try {
      blocks = document.querySelectorAll('script[type="application/ld+json"]');
    } catch (e) { return; }
    blocks.forEach(b => {
      try {
        const out = [];
        collectStructuredUrls(JSON.parse(b.textContent || ""), out, 0);
        out.forEach(u => sendVideoUrl(u, "structured-data"));
      } catch (e) {}
    });
  }

  const base64Rx = /^[A-Za-z0-9+\/_=\-\s]+$/;
  // absolute URLs, or relative paths ending in a manifest extension
  const refRx = new RegExp(
    "https?:\\/\\/[^\\s\"'<>\\\\]+" +
    "|[^\\s\"'<>\\\\:]*\\.(?:" + CFG.manifestExtensions.join("|") + ")(?:[?#][^\\s\"'<>\\\\]*)?",
    "gi");

  function decodeBase64(s) {
    try {
      let t = s.replace(/\s+/g, "").replace(/-/g, "+").replace(/_/g, "/");
      while (t.length % 4) t += "=";
      return atob(t);
    } catch (e) { return null; }
  }

  function deepScan() {
    let keys = [];
    try { keys = Object.keys(window); } catch (e) { return; }
    let scanned = 0;
    for (const k of keys) {
      if (scanned >= CFG.deepScanMaxGlobals) break;
      let v;
      try { v = window[k]; } catch (e) { continue; }
      if (typeof v !== "string") continue;
      if (v.length < CFG.deepScanMinLength || v.length > CFG.deepScanMaxLength) continue;
      scanned++;
      if (!base64Rx.test(v)) continue;
      const decoded = decodeBase64(v);
      if (!decoded || !manifestRefRx.test(decoded)) continue;
      (decoded.match(refRx) || []).forEach(u => {
        if (manifestRefRx.test(u)) sendVideoUrl(u, "deep-scan");
      });
    }
  }

  function periodicScan() {
    try { scanStructuredData(); } catch (e) {}
    try { deepScan(); } catch (e) {}
  }

  if (CFG.scanIntervalMs > 0) setInterval(periodicScan, CFG.scanIntervalMs);
  document.addEventListener("DOMContentLoaded", () => {
    try { inspectTree(document.documentElement); } catch (e) {}
    periodicScan();
  }, { once: true });

  // ---------------- player-region reset ----------------
  function regionText(el) {
    let c = el.className;
    if (c && typeof c === "object" && typeof c.baseVal === "string") c = c.baseVal;
    const id = typeof el.id === "string" ? el.id : "";
    return ((typeof c === "string" ? c : "") + " " + id).toLowerCase();
  }

  function isPlayerRegion(target) {
    let el = target;
    let depth = 0;
    while (el && el.nodeType === 1 && depth < CFG.clickMaxDepth) {
      const text = regionText(el);
      if (keywords.some(k => text.includes(k))) return true;
      el = el.parentElement;
      depth++;
    }
    return false;
  }

  // capture phase: runs before the page's own handlers start the new video
  window.addEventListener("click", ev => {
    try { if (isPlayerRegion(ev.target)) sendReset(); } catch (e) {}
  }, true);
})();
"""


class DetectorScript:
    """
    Builds the in-page video detector installed with
    ``BrowserContext.add_init_script``.

    Vectors:
      - fetch / XHR.open interception (observation only)
      - MediaSource binding (createObjectURL, src/srcObject setters)
        correlated with the last manifest seen on the network
      - MutationObserver + capturing 'play' listener on VIDEO/SOURCE
      - periodic ld+json and base64 global scan

    Candidates go to the ``videoPlayback`` binding, player-region clicks
    to ``resetDetector``. Each URL string is sent at most once per document.
    """

    @dataclass
    class Config:
        candidate_binding: str = CANDIDATE_BINDING
        reset_binding: str = RESET_BINDING

        media_extensions: List[str] = field(default_factory=lambda: [
            "m3u8", "mpd", "mp4", "mov", "m4v", "webm",
        ])
        manifest_extensions: List[str] = field(default_factory=lambda: ["m3u8", "mpd"])

        junk_prefixes: List[str] = field(default_factory=lambda: [
            "blob:", "data:", "javascript:", "mediasource:", "about:",
        ])
        player_keywords: List[str] = field(default_factory=lambda: [
            "video", "player", "thumbnail", "play-button", "episode",
        ])
        click_max_depth: int = 12

        structured_data_keys: List[str] = field(default_factory=lambda: ["contentUrl", "embedUrl"])
        structured_data_max_depth: int = 8

        scan_interval_ms: int = 2500
        deep_scan_min_length: int = 64
        deep_scan_max_length: int = 200_000
        deep_scan_max_globals: int = 400

        debug: bool = False

    def __init__(self, config: Optional["DetectorScript.Config"] = None):
        self.cfg = config or self.Config()

    def js_config(self) -> Dict[str, Any]:
        c = self.cfg
        return {
            "candidateBinding": c.candidate_binding,
            "resetBinding": c.reset_binding,
            "mediaExtensions": [re.escape(e.lstrip(".").lower()) for e in c.media_extensions],
            "manifestExtensions": [re.escape(e.lstrip(".").lower()) for e in c.manifest_extensions],
            "junkPrefixes": list(c.junk_prefixes),
            "playerKeywords": [k.lower() for k in c.player_keywords],
            "clickMaxDepth": int(c.click_max_depth),
            "structuredDataKeys": list(c.structured_data_keys),
            "structuredDataMaxDepth": int(c.structured_data_max_depth),
            "scanIntervalMs": int(c.scan_interval_ms),
            "deepScanMinLength": int(c.deep_scan_min_length),
            "deepScanMaxLength": int(c.deep_scan_max_length),
            "deepScanMaxGlobals": int(c.deep_scan_max_globals),
            "debug": bool(c.debug),
        }

    def source(self) -> str:
        return _DETECTOR_TEMPLATE.replace("__SCRIMM_CONFIG__", json.dumps(self.js_config()))


# ======================================================================
# Detection coordinator
# ======================================================================

def decide(
    gate_closed: bool,
    message: Message,
    page_url: Optional[str],
    page_title: TitleSource = None,
) -> Tuple[bool, Optional[FoundVideo]]:
    """
    Pure gate transition: (gate, message, page url, title) -> (gate, video).

    A reset always reopens the gate. A candidate is dropped while the gate
    is closed or when it cannot be resolved; otherwise it closes the gate
    and yields a FoundVideo.
    """
    if isinstance(message, ResetGateMessage):
        return False, None
    if gate_closed:
        return True, None
    try:
        video = FoundVideo.create(message.url, page_url, page_title)
    except UnresolvableURLError:
        return False, None
    return True, video


class DetectionCoordinator:
    """
    Owns the one-shot gate of a page view.

    Not thread-safe; every call must come from the thread that owns the
    browsing session (Playwright dispatches bindings and page events there).
    """

    def __init__(
        self,
        on_video_found: Optional[Callable[[FoundVideo], None]] = None,
        logger=None,
    ):
        self.on_video_found = on_video_found
        self.logger = logger or DEBUG_LOGGER
        self._gate_closed = False
        self.accepted_count = 0
        self.last_video: Optional[FoundVideo] = None

    def _log(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.log_message(f"[DetectionCoordinator] {msg}")

    @property
    def has_accepted_video(self) -> bool:
        return self._gate_closed

    def _accept(self, video: FoundVideo) -> None:
        self.accepted_count += 1
        self.last_video = video
        self._log(f"Accepted video #{self.accepted_count}: {video.video_url} ({video.page_title!r})")
        if self.on_video_found is not None:
            self.on_video_found(video)

    def handle(
        self,
        message: Message,
        page_url: Optional[str],
        page_title: TitleSource = None,
    ) -> Optional[FoundVideo]:
        was_closed = self._gate_closed
        self._gate_closed, video = decide(was_closed, message, page_url, page_title)

        if isinstance(message, ResetGateMessage):
            if was_closed:
                self._log("Gate reopened by page reset signal.")
            return None
        if video is None:
            if was_closed:
                self._log(f"Gate closed; dropped {message.url[:200]!r}")
            else:
                self._log(f"Unresolvable candidate dropped: {message.url[:200]!r}")
            return None

        self._accept(video)
        return video

    def reset(self) -> None:
        self.handle(ResetGateMessage(), None)

    def on_navigation_commit(self, url: Optional[str] = None) -> None:
        if self._gate_closed:
            self._log(f"Gate reopened by navigation to {url or '?'}")
        self._gate_closed = False

    def accept_direct(
        self,
        url: str,
        page_url: Optional[str],
        page_title: TitleSource = None,
    ) -> Optional[FoundVideo]:
        """
        Accept a direct video-file navigation or pop-up.

        These skip the gate check (the user asked for this file) but still
        close the gate so script candidates of the same interaction are dropped.
        """
        try:
            video = FoundVideo.create(url, page_url, page_title)
        except UnresolvableURLError:
            self._log(f"Unresolvable direct video URL dropped: {url[:200]!r}")
            return None
        self._gate_closed = True
        self._accept(video)
        return video


# ======================================================================
# StaticPageProbe
# ======================================================================

class StaticPageProbe:
    """
    Browser-less fallback: fetch the page HTML once and look for media
    declared in markup (video/source tags, og:video meta, ld+json, and
    manifest URLs inside inline scripts).

    Candidates are fed through a DetectionCoordinator so the same
    resolution and gate rules apply.
    """

    @dataclass
    class Config:
        timeout: float = 12.0
        user_agent: str = _UA
        max_inline_script_chars: int = 200_000
        og_video_properties: Set[str] = field(default_factory=lambda: {
            "og:video", "og:video:url", "og:video:secure_url",
        })
        script_url_regex: str = r"""https?:\\?/\\?/[^\s"'<>]+?\.(?:m3u8|mpd|mp4|m4v|mov)(?:\?[^\s"'<>]*)?"""

    def __init__(self, config: Optional["StaticPageProbe.Config"] = None, logger=None):
        self.cfg = config or self.Config()
        self.logger = logger or DEBUG_LOGGER

    def _log(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.log_message(f"[StaticPageProbe] {msg}")

    def fetch(self, url: str) -> Tuple[str, str]:
        """Return (final_url, html). HTTP errors propagate as requests exceptions."""
        resp = requests.get(
            url,
            timeout=self.cfg.timeout,
            headers={"User-Agent": self.cfg.user_agent, "Accept": "text/html,*/*"},
        )
        resp.raise_for_status()
        return resp.url or url, resp.text

    @staticmethod
    def page_title(html: str) -> Optional[str]:
        soup = BeautifulSoup(html or "", "html.parser")
        if soup.title and soup.title.string:
            return soup.title.string.strip()
        return None

    def _structured_urls(self, node: Any, out: List[str], depth: int = 0) -> None:
        if node is None or depth > 8:
            return
        if isinstance(node, list):
            for n in node:
                self._structured_urls(n, out, depth + 1)
            return
        if not isinstance(node, dict):
            return
        types = node.get("@type")
        types = types if isinstance(types, list) else [types]
        videoish = any(isinstance(t, str) and "video" in t.lower() for t in types)
        for key in ("contentUrl", "embedUrl"):
            v = node.get(key)
            if isinstance(v, str) and videoish:
                out.append(v)
        for v in node.values():
            if isinstance(v, (dict, list)):
                self._structured_urls(v, out, depth + 1)

    def candidates(self, html: str) -> List[CandidateURL]:
        soup = BeautifulSoup(html or "", "html.parser")
        out: List[CandidateURL] = []
        seen: Set[str] = set()

        def add(u: Optional[str], source: SourceVector) -> None:
            u = (u or "").strip()
            if not u or u in seen or u.lower().startswith(("blob:", "data:", "javascript:")):
                return
            seen.add(u)
            out.append(CandidateURL(u, source))

        for video in soup.find_all("video"):
            add(video.get("src"), SourceVector.DOM_MUTATION)
            for src in video.find_all("source"):
                add(src.get("src"), SourceVector.DOM_MUTATION)

        for meta in soup.find_all("meta"):
            prop = (meta.get("property") or meta.get("name") or "").lower()
            if prop in self.cfg.og_video_properties:
                add(meta.get("content"), SourceVector.STRUCTURED_DATA)

        scripts = soup.find_all("script")
        for script in scripts:
            if (script.get("type") or "").lower() != "application/ld+json":
                continue
            try:
                data = json.loads(script.string or "")
            except ValueError:
                continue
            found: List[str] = []
            self._structured_urls(data, found)
            for u in found:
                add(u, SourceVector.STRUCTURED_DATA)

        rx = re.compile(self.cfg.script_url_regex, re.IGNORECASE)
        for script in scripts:
            text = (script.string or "")[: self.cfg.max_inline_script_chars]
            for m in rx.findall(text):
                add(m.replace("\\/", "/"), SourceVector.DEEP_SCAN)

        return out

    def probe(
        self,
        url: str,
        coordinator: Optional[DetectionCoordinator] = None,
    ) -> Optional[FoundVideo]:
        final_url, html = self.fetch(url)
        title = self.page_title(html)
        cands = self.candidates(html)
        self._log(f"{len(cands)} candidate(s) in static HTML of {final_url}")
        coordinator = coordinator or DetectionCoordinator(logger=self.logger)
        for c in cands:
            video = coordinator.handle(CandidateMessage(c.url), final_url, title)
            if video is not None:
                return video
        return None


# ======================================================================
# Database
# ======================================================================

DEFAULT_TIMEOUT_S = 10.0


@dataclass
class DatabaseConfig:
    """Where the app's sqlite file lives and how it is opened."""
    path: str = DB_PATH
    timeout_s: float = DEFAULT_TIMEOUT_S
    check_same_thread: bool = False
    pragmas: Dict[str, Any] = field(default_factory=lambda: {
        "journal_mode": "WAL",
        "synchronous": "NORMAL",
    })

    def normalized_path(self) -> str:
        return str(self.path or DB_PATH)

    @property
    def in_memory(self) -> bool:
        return self.normalized_path() == ":memory:"


class DatabaseSubmanager:
    """
    One lazily opened sqlite connection behind an RLock.

    Stores hand it their DDL through ``ensure_schema`` and use the
    ``execute`` / ``fetchone`` / ``scalar`` helpers; every write commits.
    """

    def __init__(self, config: Optional[DatabaseConfig] = None, logger=None):
        self.config = config or DatabaseConfig()
        self.logger = logger or DEBUG_LOGGER
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._schemas: Set[str] = set()

    def _log(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.log_message(f"[DB] {msg}")

    # ------------------------------------------------------------ #
    # Connection lifecycle
    # ------------------------------------------------------------ #
    def open(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is not None:
                return self._conn

            db_path = self.config.normalized_path()
            existed = False
            if not self.config.in_memory:
                p = Path(db_path)
                p.parent.mkdir(parents=True, exist_ok=True)
                existed = p.exists()

            conn = sqlite3.connect(
                db_path,
                timeout=self.config.timeout_s,
                check_same_thread=self.config.check_same_thread,
            )
            conn.row_factory = sqlite3.Row
            self._conn = conn
            if not self.config.in_memory:
                self._apply_pragmas(conn)
            self._log(f"{'Opened' if existed else 'Created'} {db_path}")
            return conn

    def close(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
            self._schemas.clear()
            if conn is not None:
                conn.close()

    def __enter__(self) -> "DatabaseSubmanager":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _apply_pragmas(self, conn: sqlite3.Connection) -> None:
        for k, v in (self.config.pragmas or {}).items():
            try:
                conn.execute(f"PRAGMA {k}={v}")
            except sqlite3.Error as e:
                self._log(f"PRAGMA {k}={v} failed: {e}")
        conn.commit()

    # ------------------------------------------------------------ #
    # Schema / queries
    # ------------------------------------------------------------ #
    def ensure_schema(self, ddl_statements: Sequence[str]) -> None:
        """Run each DDL statement once per connection."""
        conn = self.open()
        with self._lock:
            pending = [d for d in ddl_statements if d not in self._schemas]
            if not pending:
                return
            for ddl in pending:
                conn.execute(ddl)
            conn.commit()
            self._schemas.update(pending)

    def execute(self, sql: str, args: Sequence[Any] = ()) -> int:
        """Run one statement and commit; returns the affected row count."""
        conn = self.open()
        with self._lock:
            cur = conn.execute(sql, tuple(args))
            conn.commit()
            return cur.rowcount

    def fetchone(self, sql: str, args: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        conn = self.open()
        with self._lock:
            return conn.execute(sql, tuple(args)).fetchone()

    def scalar(self, sql: str, args: Sequence[Any] = ()) -> Any:
        row = self.fetchone(sql, args)
        return row[0] if row is not None else None

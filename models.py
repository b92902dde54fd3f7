# ========================================================
# ================  models.py  ===========================
# ========================================================
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import quote, urljoin, urlparse

UNTITLED_VIDEO = "Untitled Video"

RECOGNIZED_SCHEMES = ("http", "https")

# Direct navigations/pop-ups to these bypass the page script entirely.
VIDEO_FILE_EXTENSIONS = ("mp4", "mov", "m4v", "m3u8")

# Wire names of the page -> host bindings.
CANDIDATE_BINDING = "videoPlayback"
RESET_BINDING = "resetDetector"

# A page title, or a zero-argument callable returning one.
TitleSource = Union[str, None, Callable[[], Optional[str]]]


class UnresolvableURLError(ValueError):
    """A candidate string could not be turned into an absolute http(s) URL."""


class SourceVector(str, enum.Enum):
    NETWORK_FETCH = "network-fetch"
    NETWORK_XHR = "network-xhr"
    MEDIA_SOURCE_BINDING = "media-source-binding"
    DOM_MUTATION = "dom-mutation"
    STRUCTURED_DATA = "structured-data"
    DEEP_SCAN = "deep-scan"


@dataclass(frozen=True)
class CandidateURL:
    url: str
    source: SourceVector


def _new_id() -> str:
    return uuid.uuid4().hex


def _is_absolute_http(u: str) -> bool:
    try:
        p = urlparse(u)
        return p.scheme.lower() in RECOGNIZED_SCHEMES and bool(p.hostname)
    except ValueError:
        return False


def resolve_video_url(candidate: str, page_url: Optional[str]) -> str:
    """
    Resolve a raw candidate against the page it came from.

    Absolute http(s) URLs are returned as-is; anything else is joined onto
    ``page_url``. Raises UnresolvableURLError when no absolute http(s) URL
    comes out.
    """
    raw = (candidate or "").strip()
    if not raw:
        raise UnresolvableURLError("empty candidate")
    if _is_absolute_http(raw):
        return raw
    if not page_url or not _is_absolute_http(page_url):
        raise UnresolvableURLError(f"no base URL to resolve {raw!r}")
    try:
        joined = urljoin(page_url, raw)
    except ValueError as e:
        raise UnresolvableURLError(f"cannot resolve {raw!r}: {e}") from e
    if not _is_absolute_http(joined):
        raise UnresolvableURLError(f"resolved to non-http URL {joined!r}")
    return joined


def clean_title(title: Optional[str]) -> str:
    t = (title or "").strip()
    return t or UNTITLED_VIDEO


def has_video_extension(url: str) -> bool:
    try:
        path = urlparse(url).path or ""
    except ValueError:
        return False
    last = path.rsplit("/", 1)[-1]
    if "." not in last:
        return False
    return last.rsplit(".", 1)[-1].lower() in VIDEO_FILE_EXTENSIONS


@dataclass(frozen=True)
class FoundVideo:
    """
    A validated detection result.

    ``video_url`` is always absolute. Build instances from raw page strings
    with ``FoundVideo.create`` so resolution happens in one place.
    """
    page_title: str
    video_url: str
    last_played_time: float = 0.0
    id: str = field(default_factory=_new_id)

    @classmethod
    def create(
        cls,
        candidate: str,
        page_url: Optional[str],
        page_title: TitleSource,
        last_played_time: float = 0.0,
    ) -> "FoundVideo":
        # resolve first so a lazy title is only fetched for usable candidates
        video_url = resolve_video_url(candidate, page_url)
        title = page_title() if callable(page_title) else page_title
        return cls(
            page_title=clean_title(title),
            video_url=video_url,
            last_played_time=float(last_played_time or 0.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pageTitle": self.page_title,
            "videoURL": self.video_url,
            "lastPlayedTime": self.last_played_time,
        }


@dataclass
class RecentItem:
    title: str
    url_string: str
    playback_time: float = 0.0
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "urlString": self.url_string,
            "playbackTime": self.playback_time,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RecentItem":
        """Strict decode; raises KeyError/TypeError/ValueError on bad records."""
        if not isinstance(d, dict):
            raise TypeError(f"recent item must be an object, got {type(d).__name__}")
        title = d["title"]
        url_string = d["urlString"]
        if not isinstance(title, str) or not isinstance(url_string, str):
            raise TypeError("title/urlString must be strings")
        return cls(
            title=title,
            url_string=url_string,
            playback_time=float(d["playbackTime"]),
            id=str(d["id"]),
        )

    def as_video(self) -> FoundVideo:
        return FoundVideo(
            page_title=clean_title(self.title),
            video_url=self.url_string,
            last_played_time=self.playback_time,
        )


@dataclass(frozen=True)
class Provider:
    name: str
    search_url: str

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Provider":
        name = d["name"]
        search_url = d["searchUrl"]
        if not isinstance(name, str) or not isinstance(search_url, str):
            raise TypeError("name/searchUrl must be strings")
        return cls(name=name, search_url=search_url)

    def search_url_for(self, query: str) -> str:
        return self.search_url + quote((query or "").strip(), safe="")


# ---------------- Message channel ----------------

@dataclass(frozen=True)
class CandidateMessage:
    url: str


@dataclass(frozen=True)
class ResetGateMessage:
    pass


Message = Union[CandidateMessage, ResetGateMessage]


def parse_message(name: str, payload: Any) -> Optional[Message]:
    """
    Map a raw binding call onto a typed message.

    ``resetDetector`` ignores its payload. Anything unrecognised returns None.
    """
    if name == RESET_BINDING:
        return ResetGateMessage()
    if name == CANDIDATE_BINDING and isinstance(payload, str):
        return CandidateMessage(payload)
    return None

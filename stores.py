# ======================= stores.py =======================
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from config import BUNDLED_PROVIDERS_FILE
from loggers import DEBUG_LOGGER
from models import FoundVideo, Provider, RecentItem
from submanagers import DatabaseSubmanager

RECENTS_KEY = "VideoRecents"
MAX_RECENTS = 10


@dataclass
class BaseStore:
    """
    Thin base class for typed stores.
    """
    db: DatabaseSubmanager


# ======================================================================
# KeyValueStore
# ======================================================================

class KeyValueStore(BaseStore):
    """
    String key -> text value table, used like a preferences domain.
    """

    KV_DDL = """
    CREATE TABLE IF NOT EXISTS kv_store
    (
        key        TEXT PRIMARY KEY,
        value      TEXT NOT NULL,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    );
    """

    def ensure_schema(self) -> None:
        self.db.ensure_schema([self.KV_DDL])

    def get(self, key: str) -> Optional[str]:
        self.ensure_schema()
        return self.db.scalar("SELECT value FROM kv_store WHERE key = ?", (key,))

    def set(self, key: str, value: str) -> None:
        self.ensure_schema()
        self.db.execute(
            """
            INSERT INTO kv_store (key, value, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            """,
            (key, value),
        )

    def delete(self, key: str) -> None:
        self.ensure_schema()
        self.db.execute("DELETE FROM kv_store WHERE key = ?", (key,))


# ======================================================================
# RecentsStore
# ======================================================================

def encode_recents(items: List[RecentItem]) -> str:
    return json.dumps([it.to_dict() for it in items], ensure_ascii=False)


def decode_recents(raw: Optional[Union[str, bytes]]) -> List[RecentItem]:
    """
    All-or-nothing decode. Raises ValueError/KeyError/TypeError on bad data;
    callers that must not fail use ``RecentsStore.load``.
    """
    if raw is None:
        return []
    data = json.loads(raw)
    if not isinstance(data, list):
        raise TypeError(f"recents payload must be a list, got {type(data).__name__}")
    return [RecentItem.from_dict(d) for d in data]


class RecentsStore:
    """
    The "Recents" list: newest first, at most MAX_RECENTS entries, one entry
    per video URL. Persisted as a JSON array under RECENTS_KEY.

    Mutations are expected on the UI thread only.
    """

    def __init__(self, kv: KeyValueStore, *, key: str = RECENTS_KEY, limit: int = MAX_RECENTS, logger=None):
        self.kv = kv
        self.key = key
        self.limit = limit
        self.logger = logger or DEBUG_LOGGER
        self.items: List[RecentItem] = []

    def _log(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.log_message(f"[RecentsStore] {msg}")

    def load(self) -> List[RecentItem]:
        try:
            self.items = decode_recents(self.kv.get(self.key))
        except (ValueError, KeyError, TypeError) as e:
            self._log(f"Could not decode stored recents ({e}); starting empty.")
            self.items = []
        return self.items

    def save(self) -> None:
        self.kv.set(self.key, encode_recents(self.items))

    def _index_of(self, url_string: str) -> int:
        for i, it in enumerate(self.items):
            if it.url_string == url_string:
                return i
        return -1

    def add_or_update(self, video: FoundVideo) -> RecentItem:
        """
        Move ``video`` to the front. An existing entry for the same URL is
        replaced, keeping its stored playback time.
        """
        idx = self._index_of(video.video_url)
        playback_time = self.items[idx].playback_time if idx != -1 else video.last_played_time
        self.items = [it for it in self.items if it.url_string != video.video_url]
        item = RecentItem(title=video.page_title, url_string=video.video_url, playback_time=playback_time)
        self.items.insert(0, item)
        del self.items[self.limit:]
        self.save()
        return item

    def update_playback_time(self, url_string: str, seconds: float) -> bool:
        idx = self._index_of(url_string)
        if idx == -1:
            return False
        self.items[idx].playback_time = float(seconds)
        self.save()
        return True

    def playback_time_for(self, url_string: str) -> float:
        idx = self._index_of(url_string)
        return self.items[idx].playback_time if idx != -1 else 0.0

    def delete(self, item: RecentItem) -> None:
        self.items = [it for it in self.items if it.id != item.id]
        self.save()

    def clear_all(self) -> None:
        self.items = []
        self.save()


# ======================================================================
# ProviderStore
# ======================================================================

class ProviderStore:
    """
    Search providers from the bundled providers.json (loaded once).
    A missing or broken file leaves the list empty.
    """

    def __init__(self, path: Optional[Path] = None, logger=None):
        self.path = Path(path) if path is not None else BUNDLED_PROVIDERS_FILE
        self.logger = logger or DEBUG_LOGGER
        self.providers: List[Provider] = []

    def _log(self, msg: str) -> None:
        if self.logger is not None:
            self.logger.log_message(f"[ProviderStore] {msg}")

    def load(self) -> List[Provider]:
        if not self.path.exists():
            self._log(f"CRITICAL: {self.path.name} not found at {self.path}")
            self.providers = []
            return self.providers
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                raise TypeError("providers.json must contain a list")
            self.providers = [Provider.from_dict(d) for d in data]
        except (OSError, ValueError, KeyError, TypeError) as e:
            self._log(f"Error decoding {self.path.name}: {e}")
            self.providers = []
        return self.providers

    def by_name(self, name: str) -> Optional[Provider]:
        key = (name or "").strip().lower()
        for p in self.providers:
            if p.name.lower() == key:
                return p
        return None

# ========================================================
# ================  config.py  ===========================
# ========================================================
from __future__ import annotations

import dataclasses
import json as _json
import os as _os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()

# ---------------- Paths & helpers ----------------
APP_DIR = _os.environ.get("SCRIMM_HOME") or _os.path.join(_os.path.expanduser("~"), ".scrimm")
DB_PATH = _os.path.join(APP_DIR, "scrimm.db")

DEFAULT_PLAYER = _os.environ.get("SCRIMM_PLAYER", "qt")
DEFAULT_BROWSER = _os.environ.get("SCRIMM_BROWSER", "chromium")


def _env_flag(name: str, default: bool = False) -> bool:
    raw = _os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DEFAULT_HEADLESS = _env_flag("SCRIMM_HEADLESS", False)


def ensure_app_dirs() -> None:
    _os.makedirs(APP_DIR, exist_ok=True)


def get_base_path() -> Path:
    """ Returns the path to bundled resources (temp folder if frozen). """
    if getattr(sys, "frozen", False):
        return Path(sys._MEIPASS)
    return Path(__file__).parent


DATA_PACKAGE = "scrimm_data"
BUNDLED_PROVIDERS_FILE = get_base_path() / DATA_PACKAGE / "providers.json"


_QUOTES = ("'", '"')
_JSON_BRACKETS = (("{", "}"), ("[", "]"))


def _coerce_extra(raw: str) -> Any:
    """Turn one ``--extra`` value into bool, number, JSON or plain text."""
    text = raw.strip()
    if text.lower() in ("true", "false"):
        return text.lower() == "true"
    for kind in (int, float):
        try:
            return kind(text)
        except ValueError:
            continue
    if len(text) >= 2 and text[0] == text[-1] and text[0] in _QUOTES:
        return text[1:-1]
    if any(text.startswith(a) and text.endswith(b) for a, b in _JSON_BRACKETS):
        try:
            return _json.loads(text)
        except ValueError:
            pass
    return text


def parse_extras(items: List[str]) -> Dict[str, Dict[str, Any]]:
    """``group.key=value`` pairs into ``{group: {key: value}}``; bare keys go to ``all``."""
    grouped: Dict[str, Dict[str, Any]] = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep:
            continue
        group, dot, key = name.partition(".")
        if not dot:
            group, key = "all", name
        grouped.setdefault(group.strip().lower(), {})[key.strip()] = _coerce_extra(value)
    return grouped


def apply_extras(cfg: Any, values: Optional[Dict[str, Any]]) -> Any:
    """
    Copy known keys from an extras group onto a Config dataclass.

    Unknown keys are ignored. Set/list fields accept a list or a
    comma-separated string.
    """
    if not values:
        return cfg
    fields = {f.name: f for f in dataclasses.fields(cfg)}
    for key, value in values.items():
        if key not in fields:
            continue
        current = getattr(cfg, key)
        if isinstance(current, (set, list)):
            if isinstance(value, str):
                value = [p.strip() for p in value.split(",") if p.strip()]
            value = type(current)(value)
        elif isinstance(current, bool):
            value = bool(value)
        elif isinstance(current, int) and not isinstance(value, bool):
            value = int(value)
        elif isinstance(current, float):
            value = float(value)
        setattr(cfg, key, value)
    return cfg


# ---------------- Address bar ----------------

def normalize_address(text: str) -> Optional[str]:
    """
    Turn address-bar input into an http(s) URL.

    'example.com/x' -> 'https://example.com/x'. Returns None when the
    result has no host.
    """
    s = (text or "").strip()
    if not s:
        return None
    low = s.lower()
    if not (low.startswith("http://") or low.startswith("https://")):
        s = "https://" + s
    try:
        host = urlparse(s).hostname
    except ValueError:
        return None
    if not host:
        return None
    return s


def looks_like_address(text: str) -> bool:
    s = (text or "").strip()
    if not s or " " in s:
        return False
    low = s.lower()
    if low.startswith("http://") or low.startswith("https://"):
        return True
    host = s.split("/", 1)[0]
    return "." in host or host.startswith("localhost")

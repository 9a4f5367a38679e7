from __future__ import annotations

import logging
import os
import threading
from typing import Any, Iterable

from dotenv import load_dotenv


logger = logging.getLogger(__name__)


_TRUTHY = {"1", "true", "t", "yes", "y", "on"}


def clean_text(v: Any, *, max_len: int = 2000) -> str:
    try:
        s = "" if v is None else str(v)
    except Exception:
        s = ""
    s = s.replace("\n", " ").replace("\r", " ").strip()
    if len(s) > max_len:
        s = s[: max_len - 1] + "…"
    return s


def is_truthy(v: object | None) -> bool:
    if v is None:
        return False
    return str(v).strip().lower() in _TRUTHY


def env_str(name: str) -> str | None:
    """
    Return a trimmed env var value, or None when unset/blank.
    """
    v = os.getenv(name)
    if v is None:
        return None
    s = str(v).strip()
    return s if s else None


def env_any(*names: str, default: str = "unknown", max_len: int = 256) -> str:
    for name in names:
        v = env_str(name)
        if v:
            return clean_text(v, max_len=max_len)
    return default


def env_list(name: str, *, default: Iterable[str] = ()) -> tuple[str, ...]:
    """
    Comma-separated env var -> tuple of non-empty items (order preserved).
    """
    raw = env_str(name)
    if raw is None:
        return tuple(default)
    return tuple(p.strip() for p in raw.split(",") if p.strip())


_dotenv_lock = threading.Lock()
_dotenv_loaded = False


def load_local_env(dotenv_path: str | None = None) -> bool:
    """
    Load a local `.env` (dev runs) into the process environment, once.

    Variables already set in the environment win. The path defaults to
    `DOTENV_PATH`, else `.env` in the working directory. A missing file is fine.
    Returns True if a file was read on this call.
    """
    global _dotenv_loaded
    with _dotenv_lock:
        if _dotenv_loaded:
            return False
        _dotenv_loaded = True
        path = dotenv_path or env_str("DOTENV_PATH") or os.path.join(os.getcwd(), ".env")
        if not os.path.isfile(path):
            return False
        load_dotenv(dotenv_path=path, override=False)
        logger.info("env.dotenv_loaded path=%s", path)
        return True

"""Client-side persistent state: anonymous fingerprint and display alias.

``LocalStore`` plays the part of the browser's local storage plus cookie jar,
persisted as one JSON document so state survives a reload.
"""

from __future__ import annotations

import json
import secrets
import string
import time
from http.cookies import SimpleCookie
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

import structlog

logger = structlog.get_logger(__name__)

FINGERPRINT_KEY = "trutharrow:fingerprint"
ALIAS_KEY = "trutharrow:lastAlias"
ALIAS_COOKIE_MAX_AGE = 31536000

_BASE36 = string.digits + string.ascii_lowercase


class LocalStore:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._items: dict[str, str] = {}
        self._cookies: SimpleCookie = SimpleCookie()
        self.reload()

    def reload(self) -> None:
        self._items = {}
        self._cookies = SimpleCookie()
        if not self._path.exists():
            return
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("local_store_unreadable", path=str(self._path), error=str(exc))
            return
        self._items = {str(key): str(value) for key, value in document.get("items", {}).items()}
        cookie_header = document.get("cookies")
        if cookie_header:
            self._cookies.load(cookie_header)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def set_cookie(self, name: str, value: str, *, max_age: int, path: str = "/") -> None:
        self._cookies[name] = quote(value, safe="")
        self._cookies[name]["path"] = path
        self._cookies[name]["max-age"] = max_age
        self._flush()

    def get_cookie(self, name: str) -> Optional[str]:
        morsel = self._cookies.get(name)
        return unquote(morsel.value) if morsel else None

    def cookie_header(self, name: str) -> Optional[str]:
        morsel = self._cookies.get(name)
        return morsel.OutputString() if morsel else None

    def _flush(self) -> None:
        document = {
            "items": self._items,
            "cookies": self._cookies.output(header="", sep=";").strip() or None,
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(document, indent=2), encoding="utf-8")


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def get_fingerprint(store: LocalStore) -> str:
    fingerprint = store.get_item(FINGERPRINT_KEY)
    if not fingerprint:
        fingerprint = f"fp_{int(time.time() * 1000)}_{_random_base36(13)}"
        store.set_item(FINGERPRINT_KEY, fingerprint)
        logger.info("fingerprint_created")
    return fingerprint


class AliasStore:
    def __init__(self, store: LocalStore) -> None:
        self._store = store

    @property
    def alias(self) -> str:
        return self._store.get_item(ALIAS_KEY) or ""

    def set_alias(self, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            return self.alias
        self._store.set_item(ALIAS_KEY, trimmed)
        self._store.set_cookie(ALIAS_KEY, trimmed, max_age=ALIAS_COOKIE_MAX_AGE)
        return trimmed

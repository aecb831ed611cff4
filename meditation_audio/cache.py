from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Hashable

logger = logging.getLogger(__name__)

__all__ = ["AssetCache"]


class AssetCache:
    """
    Process-lifetime store for audio assets that are expensive to fetch.

    Create one and pass it to whoever needs it. ``get_or_load`` runs the loader at most
    once per key, even when several threads ask for the same key concurrently.
    """

    def __init__(self) -> None:
        self._items: Dict[Hashable, bytes] = {}
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def get_or_load(self, key: Hashable, loader: Callable[[], bytes]) -> bytes:
        with self._guard:
            if key in self._items:
                return self._items[key]
            lock = self._locks.setdefault(key, threading.Lock())

        with lock:
            with self._guard:
                if key in self._items:
                    return self._items[key]
            logger.debug("Loading asset %r", key)
            data = loader()
            with self._guard:
                self._items[key] = data
            return data

    def __contains__(self, key: Hashable) -> bool:
        with self._guard:
            return key in self._items

    def __len__(self) -> int:
        with self._guard:
            return len(self._items)

    def clear(self) -> None:
        with self._guard:
            self._items.clear()
            self._locks.clear()

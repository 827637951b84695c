"""
Per-run result cache.

One instance is created at the start of a resolution run and cleared (or
dropped) at its end. Keys are (model identifier, text); nothing is persisted.
"""

from __future__ import annotations

from typing import Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")

CacheKey = Tuple[str, str]


class ResolutionCache(Generic[T]):
    def __init__(self) -> None:
        self._data: Dict[CacheKey, T] = {}

    def get(self, model: str, text: str) -> Optional[T]:
        return self._data.get((model, text))

    def put(self, model: str, text: str, value: T) -> None:
        self._data[(model, text)] = value

    def clear(self) -> None:
        self._data.clear()

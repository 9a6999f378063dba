"""
ResultBag: ordered name -> value mapping returned by procedure calls and map queries.

With ``case_insensitive=True`` lookups ignore key case while the first
spelling of each key is kept for iteration.
"""

from collections.abc import Iterator, MutableMapping
from typing import Any


class ResultBag(MutableMapping):
    def __init__(self, data: Any = None, *, case_insensitive: bool = False) -> None:
        self._data: dict[str, Any] = {}
        self._keys: dict[str, str] = {}
        self.case_insensitive = case_insensitive
        if data:
            self.update(data)

    def _norm(self, key: str) -> str:
        return key.lower() if self.case_insensitive and isinstance(key, str) else key

    def __getitem__(self, key: str) -> Any:
        return self._data[self._keys[self._norm(key)]]

    def __setitem__(self, key: str, value: Any) -> None:
        nk = self._norm(key)
        existing = self._keys.get(nk)
        if existing is not None:
            self._data[existing] = value
            return
        self._keys[nk] = key
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        original = self._keys.pop(self._norm(key))
        del self._data[original]

    def __contains__(self, key: object) -> bool:
        return self._norm(key) in self._keys  # type: ignore[arg-type]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ResultBag):
            return self._data == other._data
        if isinstance(other, dict):
            return self._data == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"ResultBag({self._data!r})"

from typing import Any, Hashable


_MISSING = object()


class MemoCache:
    """Per-session memo of lookup results keyed by (operation, parameters).

    `None` is a legitimate cached value: "nothing found" is remembered too.
    """

    def __init__(self) -> None:
        self._data: dict[tuple[Hashable, ...], Any] = {}

    def __contains__(self, key: tuple[Hashable, ...]) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def get(self, op: str, *params: Hashable, default: Any = _MISSING) -> Any:
        try:
            return self._data[(op, *params)]
        except KeyError:
            if default is _MISSING:
                raise
            return default

    def set(self, op: str, *params: Hashable, value: Any) -> None:
        self._data[(op, *params)] = value

    def clear(self) -> None:
        self._data.clear()

import pytest

from kitchen.cache import MemoCache


def test_memo_cache() -> None:
    cache = MemoCache()
    assert ("today", "2024-01-02") not in cache
    with pytest.raises(KeyError):
        cache.get("today", "2024-01-02")
    assert cache.get("today", "2024-01-02", default="miss") == "miss"

    cache.set("today", "2024-01-02", value=None)
    assert ("today", "2024-01-02") in cache
    assert cache.get("today", "2024-01-02", default="miss") is None

    cache.set("alternates", "tuesday", "lunch", value=[])
    assert len(cache) == 2
    cache.clear()
    assert len(cache) == 0

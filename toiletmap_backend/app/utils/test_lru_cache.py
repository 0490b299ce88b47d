# app/utils/test_lru_cache.py
import threading
from collections import OrderedDict

import pytest
from app.utils.lru_cache import LRUCache

def test_get_returns_none_on_miss():
    cache = LRUCache(2)
    assert cache.get('missing') is None

def test_evicts_oldest_entry_at_capacity():
    cache = LRUCache(2)
    cache.set('a', 1)
    cache.set('b', 2)
    cache.set('c', 3)

    assert 'a' not in cache
    assert cache.get('b') == 2
    assert cache.get('c') == 3
    assert len(cache) == 2

def test_recently_read_entry_survives_eviction():
    cache = LRUCache(2)
    cache.set('a', 1)
    cache.set('b', 2)
    cache.get('a')
    cache.set('c', 3)

    assert 'a' in cache
    assert 'b' not in cache

def test_overwrite_does_not_evict():
    cache = LRUCache(2)
    cache.set('a', 1)
    cache.set('b', 2)
    cache.set('a', 10)

    assert len(cache) == 2
    assert cache.get('a') == 10
    assert cache.get('b') == 2

def test_invalidate_and_clear():
    cache = LRUCache(3)
    cache.set('a', 1)
    cache.set('b', 2)
    cache.invalidate('a')
    cache.invalidate('unknown')  # 없는 키는 무시
    assert 'a' not in cache
    cache.clear()
    assert len(cache) == 0

def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        LRUCache(0)

class _VanishingEntries(OrderedDict):
    """move_to_end 직전에 다른 스레드가 항목을 무효화한 상황을 재현합니다."""

    def move_to_end(self, key, last=True):
        self.pop(key, None)
        super().move_to_end(key, last)

def test_entry_invalidated_during_get_is_a_miss():
    cache = LRUCache(2)
    cache._entries = _VanishingEntries()
    cache._entries['k'] = 1

    assert cache.get('k') is None
    assert 'k' not in cache

def test_concurrent_get_and_invalidate_never_raise():
    cache = LRUCache(4)
    errors = []

    def reader():
        try:
            for _ in range(2000):
                cache.get('k')
        except Exception as e:  # 실패를 메인 스레드로 전달
            errors.append(e)

    def writer():
        for index in range(2000):
            cache.set('k', index)
            cache.invalidate('k')

    threads = [threading.Thread(target=reader) for _ in range(3)] + [threading.Thread(target=writer)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []

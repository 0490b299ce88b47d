# app/utils/lru_cache.py
import logging
import threading
from collections import OrderedDict
from typing import Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar('V')


class LRUCache(Generic[V]):
    """
    용량이 고정된 LRU 캐시.
    삽입 순서를 유지하는 OrderedDict 위에서, 용량을 넘는 삽입 시 가장 오래된 항목을 제거합니다.
    캐시는 지연 시간 최적화일 뿐 진실의 원천이 아니므로, 언제 비워져도 정확성에 영향이 없어야 합니다.

    서비스 인스턴스는 요청 스레드 사이에서 공유되므로 모든 연산은 하나의 락 안에서 수행합니다.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("캐시 용량은 1 이상이어야 합니다.")
        self.capacity = capacity
        self._entries: "OrderedDict[Hashable, V]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            try:
                self._entries.move_to_end(key)
                return self._entries[key]
            except KeyError:
                # 조회 도중 무효화된 항목은 캐시 미스로 취급
                return None

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self.capacity:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug(f"LRU cache evicted key {evicted_key}")
            self._entries[key] = value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

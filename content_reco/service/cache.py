import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    만료된 항목은 조회 시 그리고 set() 마다 정리한다.
    max_entries 를 넘으면 가장 오래된 항목부터 버린다.
    """

    def __init__(
        self,
        ttl_sec: float = 300,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10000,
    ):
        self.ttl = ttl_sec
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self.data: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            hit = self.data.get(key)
            if hit is None:
                return None
            ts, val = hit
            if now - ts < self.ttl:
                return val
            del self.data[key]
        return None

    def set(self, key: str, val: Any) -> None:
        now = self._clock()
        with self._lock:
            self._sweep_locked(now)
            self.data.pop(key, None)
            # dict 는 삽입 순서 = 저장 시각 순서
            while self.data and len(self.data) >= self.max_entries:
                del self.data[next(iter(self.data))]
            self.data[key] = (now, val)

    def _sweep_locked(self, now: float) -> None:
        expired = [k for k, (ts, _) in self.data.items() if now - ts >= self.ttl]
        for k in expired:
            del self.data[k]

    def clear(self) -> None:
        with self._lock:
            self.data.clear()

    def __len__(self) -> int:
        return len(self.data)

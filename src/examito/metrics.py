"""In-process counters exposed at ``/metrics``.

プロセス内メモリのみで集計する（再起動でリセット）。

- requests: パスごとの直近レイテンシ窓（p95 用）、件数、エラー件数
- reviews: 評価（hard/good/easy）ごとの採点件数と合計
"""

from __future__ import annotations

import math
import threading
from collections import Counter, deque
from collections.abc import Sequence

from .models.review import Rating


def percentile(values: Sequence[float], fraction: float) -> float:
    """Nearest-rank percentile; 0.0 for an empty window."""
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = max(1, math.ceil(fraction * len(ordered)))
    return ordered[rank - 1]


class MetricsRegistry:
    def __init__(self, window_size: int = 200) -> None:
        self._window_size = window_size
        self._lock = threading.Lock()
        self._latency_windows: dict[str, deque[float]] = {}
        self._request_counts: Counter[str] = Counter()
        self._error_counts: Counter[str] = Counter()
        self._ratings: Counter[str] = Counter({rating.value: 0 for rating in Rating})

    def record(self, path: str, latency_ms: float, *, is_error: bool = False) -> None:
        with self._lock:
            window = self._latency_windows.get(path)
            if window is None:
                window = self._latency_windows[path] = deque(maxlen=self._window_size)
            window.append(latency_ms)
            self._request_counts[path] += 1
            if is_error:
                self._error_counts[path] += 1

    def record_review(self, rating: str) -> None:
        with self._lock:
            self._ratings[Rating(rating).value] += 1

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            paths = {
                path: {
                    "p95_ms": round(percentile(window, 0.95), 2),
                    "count": self._request_counts[path],
                    "errors": self._error_counts[path],
                }
                for path, window in self._latency_windows.items()
            }
            reviews = dict(self._ratings)
        return {
            "paths": paths,
            "reviews": reviews,
            "reviews_total": sum(reviews.values()),
        }


registry = MetricsRegistry()

from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, Optional, Sequence, Tuple

import pandas as pd

from .models import LocationMethod, LocationResult


class ResultHistory:
    """定位结果序列（只追加），用于时间序列汇总"""

    def __init__(self, max_size: Optional[int] = None):
        # max_size 为 None 时不限长度，否则只保留最近 max_size 条
        self.max_size = max_size
        self._results: Deque[LocationResult] = deque(maxlen=max_size)

    def push(self, result: LocationResult) -> None:
        self._results.append(result)

    def last(self) -> Optional[LocationResult]:
        if not self._results:
            return None
        return self._results[-1]

    def all(self) -> Tuple[LocationResult, ...]:
        return tuple(self._results)

    @property
    def is_empty(self) -> bool:
        return not self._results

    def clear(self) -> None:
        self._results.clear()

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[LocationResult]:
        return iter(tuple(self._results))

    @staticmethod
    def _mean(results: Sequence[LocationResult], method: str) -> LocationResult:
        count = len(results)
        return LocationResult(
            x=sum(r.x for r in results) / count,
            y=sum(r.y for r in results) / count,
            z=sum(r.z for r in results) / count,
            confidence=sum(r.confidence for r in results) / count,
            error=sum(r.error for r in results) / count,
            method=method,
            beacon_count=0,
        )

    def average(self) -> Optional[LocationResult]:
        """全部结果的平均位置；beacon_count 为 0 表示聚合结果"""
        if not self._results:
            return None
        return self._mean(tuple(self._results), LocationMethod.AVERAGE.value)

    def average_last(self, n: int) -> Optional[LocationResult]:
        """最近 n 个结果的平均位置，n 超过长度时取全部"""
        if not self._results or n <= 0:
            return None
        window = tuple(self._results)[-n:]
        return self._mean(window, f"average_last_{n}")

    def to_dataframe(self) -> pd.DataFrame:
        columns = ["timestamp", "x", "y", "z", "confidence", "error", "method", "beacon_count"]
        return pd.DataFrame(
            [
                {
                    "timestamp": r.timestamp,
                    "x": r.x,
                    "y": r.y,
                    "z": r.z,
                    "confidence": r.confidence,
                    "error": r.error,
                    "method": r.method,
                    "beacon_count": r.beacon_count,
                }
                for r in self._results
            ],
            columns=columns,
        )

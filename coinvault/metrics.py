# coinvault/metrics.py
from __future__ import annotations
import time
import threading
from collections import defaultdict
from typing import Dict, List

class _Histogram:
    # fixed buckets in ms (log-spaced)
    BUCKETS = [10, 25, 50, 100, 250, 500, 1000, 2000, 5000, 10000]
    SAMPLES = 200
    def __init__(self):
        self.counts = [0]*len(self.BUCKETS)
        self.lock = threading.Lock()
        self._samples: List[float] = []  # rolling tail for p95
    def observe_ms(self, ms: float):
        i = 0
        while i < len(self.BUCKETS) - 1 and ms > self.BUCKETS[i]:
            i += 1
        with self.lock:
            self.counts[i] += 1
            self._samples.append(ms)
            if len(self._samples) > self.SAMPLES:
                self._samples = self._samples[-self.SAMPLES:]
    def p95_ms(self) -> float:
        with self.lock:
            if not self._samples:
                return 0.0
            arr = sorted(self._samples)
            return arr[int(0.95 * (len(arr)-1))]

class Metrics:
    """Counters + latency histograms for the provider layer and HTTP surface."""
    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.histos: Dict[str, _Histogram] = defaultdict(_Histogram)
        self.lock = threading.Lock()
        self.process_start_ns = time.time_ns()
    def inc(self, key: str, n: int = 1):
        with self.lock:
            self.counters[key] += n
    def get(self, key: str) -> int:
        with self.lock:
            return self.counters.get(key, 0)
    def observe_ms(self, key: str, ms: float):
        with self.lock:
            histo = self.histos[key]
        histo.observe_ms(ms)
    def reset(self):
        with self.lock:
            self.counters.clear()
            self.histos.clear()
    def snapshot(self) -> Dict:
        up_ms = (time.time_ns() - self.process_start_ns) / 1e6
        with self.lock:
            counters = dict(self.counters)
            histos = dict(self.histos)
        return {
            "uptime_ms": up_ms,
            "counters": counters,
            "latency_p95_ms": {k: h.p95_ms() for k, h in histos.items()},
        }

metrics = Metrics()

"""Opt-in URL deduplication.

Crawls fetch every discovered URL, repeats included. Wrapping the paginate
function with :func:`dedupe` drops URLs that were already fetched or already
discovered, using a Bloom filter so memory stays flat on long crawls.
"""
import logging
import math
from typing import Any, Callable, List

import mmh3
import numpy as np

from .parsing import as_candidates
from .types import Candidates, RequestContext


logger = logging.getLogger(__name__)

TARGET_FPR = 0.001
DEFAULT_EXPECTED_URLS = 1_000_000


def calculate_optimal_params(n: int, p: float) -> tuple[int, int]:
    """Calculate optimal m (bits) and k (hash functions)."""
    if n <= 0 or p <= 0 or p >= 1:
        raise ValueError("Invalid parameters")
    m = -n * math.log(p) / (math.log(2) ** 2)
    k = (m / n) * math.log(2)
    return int(math.ceil(m)), int(math.ceil(k))


class BloomFilter:
    def __init__(self, expected_items: int = DEFAULT_EXPECTED_URLS, false_positive_rate: float = TARGET_FPR):
        self.m, self.k = calculate_optimal_params(expected_items, false_positive_rate)
        self.n_added = 0
        self.bit_array = np.zeros((self.m + 7) // 8, dtype=np.uint8)

    def _positions(self, x: str) -> np.ndarray:
        # double hashing: h(i) = h1(x) + i*h2(x)
        h1 = mmh3.hash(x, 0, signed=False)
        h2 = mmh3.hash(x, h1, signed=False)
        return (h1 + np.arange(self.k, dtype=np.uint64) * h2) % self.m

    def add(self, x: str) -> None:
        positions = self._positions(x)
        np.bitwise_or.at(self.bit_array, positions // 8, (1 << (positions % 8)).astype(np.uint8))
        self.n_added += 1

    def contains(self, x: str) -> bool:
        positions = self._positions(x)
        bits = self.bit_array[positions // 8] & (1 << (positions % 8)).astype(np.uint8)
        return bool(bits.all())

    def get_stats(self) -> dict:
        set_bits = int(np.unpackbits(self.bit_array).sum())
        fill_ratio = set_bits / self.m if self.m > 0 else 0
        return {
            "items_added": self.n_added,
            "size_bits": self.m,
            "num_hashes": self.k,
            "memory_mb": self.bit_array.nbytes / (1024 * 1024),
            "fill_ratio": fill_ratio,
            "estimated_fpr": (fill_ratio ** self.k) if self.n_added > 0 else 0,
            "set_bits": set_bits,
        }

    def __contains__(self, x: str) -> bool:
        return self.contains(x)

    def __len__(self) -> int:
        return self.n_added


Paginate = Callable[[Any, RequestContext], Candidates]


def dedupe(paginate: Paginate, expected_urls: int = DEFAULT_EXPECTED_URLS,
           false_positive_rate: float = TARGET_FPR) -> Paginate:
    seen = BloomFilter(expected_urls, false_positive_rate)

    def unique(parsed: Any, ctx: RequestContext) -> List[Any]:
        if ctx.url not in seen:
            seen.add(ctx.url)
        fresh: List[Any] = []
        for url in as_candidates(paginate(parsed, ctx)):
            if not isinstance(url, str):
                fresh.append(url)
                continue
            if url in seen:
                logger.debug("dropping already seen url %s", url)
                continue
            seen.add(url)
            fresh.append(url)
        return fresh

    unique.seen = seen  # type: ignore[attr-defined]
    return unique

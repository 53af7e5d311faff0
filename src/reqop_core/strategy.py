from __future__ import annotations

import asyncio
import random
import threading
from typing import Callable, Optional

from .types import TransientClassifier

Backoff = Callable[[int], float]
Jitter = Callable[[float], float]


class LockedRandom:
    """A random generator that can be shared by concurrent calls."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self._rng = rng if rng is not None else random.Random(seed)
        self._lock = threading.Lock()

    def gauss(self, mu: float, sigma: float) -> float:
        with self._lock:
            return self._rng.gauss(mu, sigma)

    def uniform(self, a: float, b: float) -> float:
        with self._lock:
            return self._rng.uniform(a, b)


class Limit:
    """Allow at most ``max_attempts`` attempts."""

    def __init__(self, max_attempts: int):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts

    def __call__(self, attempt: int, error: Optional[BaseException]) -> bool:
        return attempt < self.max_attempts

    def __repr__(self) -> str:
        return f"Limit({self.max_attempts})"


class BackoffWithJitter:
    """Sleep ``jitter(backoff(attempt))`` seconds before every retry."""

    def __init__(self, backoff: Backoff, jitter: Optional[Jitter] = None):
        self.backoff = backoff
        self.jitter = jitter

    async def __call__(self, attempt: int, error: Optional[BaseException]) -> bool:
        if attempt == 0:
            return True
        delay = self.backoff(attempt)
        if self.jitter is not None:
            delay = self.jitter(delay)
        await asyncio.sleep(max(0.0, delay))
        return True


class RetryIf:
    """Stop retrying once the last error is classified as not transient."""

    def __init__(self, classifier: TransientClassifier):
        self.classifier = classifier

    def __call__(self, attempt: int, error: Optional[BaseException]) -> bool:
        return error is None or bool(self.classifier(error))


def binary_exponential(factor_s: float, max_delay_s: Optional[float] = None) -> Backoff:
    def backoff(attempt: int) -> float:
        d = factor_s * (2**attempt)
        return d if max_delay_s is None else min(max_delay_s, d)

    return backoff


def normal_distribution(generator: LockedRandom, std_deviation: float) -> Jitter:
    def jitter(delay: float) -> float:
        return max(0.0, delay + generator.gauss(0.0, std_deviation) * delay)

    return jitter


def standard_backoff(
    factor_s: float, generator: LockedRandom, std_deviation: float
) -> BackoffWithJitter:
    """Exponential backoff with normally distributed jitter."""
    return BackoffWithJitter(
        binary_exponential(factor_s), normal_distribution(generator, std_deviation)
    )

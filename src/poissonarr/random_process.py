"""
Random Process

Exponential inter-arrival sampling and weighted selection. Everything here is
stateless; callers pass their own ``random.Random`` to get reproducible draws.
"""

import math
import random
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")


def sample_inter_arrival(rate: float, rng: random.Random | None = None) -> float:
    """
    Draw one exponential inter-arrival time with the given rate.

    Uses the inverse CDF: if U ~ Uniform[0, 1) then -ln(1 - U) / rate is
    exponential with mean 1 / rate.

    Args:
        rate: Arrivals per unit time, must be positive

    Returns:
        Time until the next arrival, in the same unit as ``rate``
    """
    if rate <= 0:
        raise ValueError(f"rate must be positive, got {rate}")
    rng = rng or random
    return -math.log(1.0 - rng.random()) / rate


def weighted_choice(
    items: Sequence[T],
    weight_of: Callable[[T], float],
    rng: random.Random | None = None,
) -> T:
    """
    Pick one item with probability proportional to its weight.

    Items are scanned in order against a single uniform draw over the total
    weight, so ties go to the earlier item. Empty input or a non-positive
    total weight is a caller error.
    """
    weights = [weight_of(item) for item in items]
    total = sum(weights)
    if not items or total <= 0:
        raise ValueError("weighted_choice needs at least one positive weight")

    rng = rng or random
    r = rng.random() * total
    cumulative = 0.0
    for item, weight in zip(items, weights):
        cumulative += weight
        if r < cumulative:
            return item
    # Float accumulation can leave r a hair above the last boundary
    return items[-1]


def uniform_choice(items: Sequence[T], rng: random.Random | None = None) -> T:
    """Equal-weight special case of :func:`weighted_choice`."""
    if not items:
        raise ValueError("uniform_choice needs at least one item")
    rng = rng or random
    return items[int(rng.random() * len(items))]

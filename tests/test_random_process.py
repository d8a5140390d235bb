import random

import pytest

from poissonarr.random_process import sample_inter_arrival, uniform_choice, weighted_choice


class StubRandom:
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


def test_inter_arrival_mean_matches_rate():
    rng = random.Random(7)
    rate = 2.0
    draws = [sample_inter_arrival(rate, rng) for _ in range(50_000)]
    assert all(d >= 0 for d in draws)
    assert sum(draws) / len(draws) == pytest.approx(1 / rate, rel=0.03)


def test_inter_arrival_uses_inverse_cdf():
    # U = 0.5 -> -ln(0.5) / 1.0
    assert sample_inter_arrival(1.0, StubRandom(0.5)) == pytest.approx(0.693147, rel=1e-5)


@pytest.mark.parametrize("rate", [0, -1.5])
def test_inter_arrival_rejects_non_positive_rate(rate):
    with pytest.raises(ValueError):
        sample_inter_arrival(rate)


def test_weighted_choice_frequency():
    rng = random.Random(42)
    items = ["google", "duckduckgo", "bing", "yahoo"]
    weights = {"google": 55, "duckduckgo": 20, "bing": 15, "yahoo": 10}
    draws = 100_000
    hits = sum(
        1 for _ in range(draws) if weighted_choice(items, weights.get, rng) == "google"
    )
    assert hits / draws == pytest.approx(0.55, abs=0.01)


def test_weighted_choice_ties_go_to_first_item():
    items = ["a", "b", "c"]
    assert weighted_choice(items, lambda _: 1, StubRandom(0.0)) == "a"


def test_weighted_choice_skips_zero_weights():
    rng = random.Random(3)
    weights = {"a": 0, "b": 5, "c": 0}
    picks = {weighted_choice(list(weights), weights.get, rng) for _ in range(500)}
    assert picks == {"b"}


def test_weighted_choice_upper_edge_returns_last():
    weights = {"a": 1, "b": 1}
    assert weighted_choice(list(weights), weights.get, StubRandom(0.9999999999)) == "b"


@pytest.mark.parametrize("items", [[], ["a", "b"]])
def test_weighted_choice_without_positive_weight_is_an_error(items):
    with pytest.raises(ValueError):
        weighted_choice(items, lambda _: 0)


def test_uniform_choice_covers_all_items():
    rng = random.Random(11)
    items = ["x", "y", "z"]
    assert {uniform_choice(items, rng) for _ in range(300)} == set(items)


def test_uniform_choice_empty_is_an_error():
    with pytest.raises(ValueError):
        uniform_choice([])

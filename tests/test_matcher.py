"""Tests for best-match search."""
import random

from models.fingerprint import Fingerprint
from utils.matcher import find_best_match


def _fp(hex_value: str) -> Fingerprint:
    return Fingerprint(hash_hex=hex_value, hash_size=8)


_QUERY = _fp("0f0f0f0f0f0f0f0f")
_CANDIDATES = [
    ("far.jpg", _fp("f0f0f0f0f0f0f0f0")),      # 64 bits apart
    ("near.jpg", _fp("0f0f0f0f0f0f0f00")),     # 4 bits apart
    ("exact.jpg", _fp("0f0f0f0f0f0f0f0f")),    # identical
    ("medium.jpg", _fp("0f0f0f0f0f0f0000")),   # 8 bits apart
]


def test_empty_candidates_is_no_match():
    result = find_best_match("q.png", _QUERY, [])
    assert result.candidate is None
    assert result.distance is None
    assert not result.matched


def test_exact_match_wins_regardless_of_order():
    rng = random.Random(3)
    for _ in range(10):
        shuffled = _CANDIDATES[:]
        rng.shuffle(shuffled)
        result = find_best_match("q.png", _QUERY, shuffled)
        assert result.candidate == "exact.jpg"
        assert result.distance == 0


def test_minimum_distance_is_selected():
    without_exact = [c for c in _CANDIDATES if c[0] != "exact.jpg"]
    result = find_best_match("q.png", _QUERY, without_exact)
    assert result.candidate == "near.jpg"
    assert result.distance == 4


def test_tie_goes_to_first_candidate():
    twins = [("b.jpg", _fp("0f0f0f0f0f0f0f0f")), ("a.jpg", _fp("0f0f0f0f0f0f0f0f"))]
    assert find_best_match("q.png", _QUERY, twins).candidate == "b.jpg"
    assert find_best_match("q.png", _QUERY, twins[::-1]).candidate == "a.jpg"


def test_cutoff_turns_best_into_no_match():
    far_only = [_CANDIDATES[0], _CANDIDATES[3]]
    result = find_best_match("q.png", _QUERY, far_only, max_distance=5)
    assert result.candidate is None
    assert result.distance == 8


def test_cutoff_is_inclusive():
    result = find_best_match("q.png", _QUERY, [_CANDIDATES[1]], max_distance=4)
    assert result.candidate == "near.jpg"


def test_review_flag():
    near = [_CANDIDATES[1]]
    assert find_best_match("q.png", _QUERY, near, review_distance=3).needs_review
    assert not find_best_match("q.png", _QUERY, near, review_distance=4).needs_review
    assert not find_best_match("q.png", _QUERY, near).needs_review

"""
Tests for the shared numeric helpers.
"""

from __future__ import annotations

import pytest

from veilstat.core.services.metrics import mean, percent, round_1dp, round_half_up, round_int


class TestRounding:
    """Half-up rounding."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(0.5, 1), (1.5, 2), (2.5, 3), (2.4, 2), (-2.5, -3), (0.0, 0)],
    )
    def test_round_int(self, value: float, expected: int) -> None:
        assert round_int(value) == expected

    def test_round_1dp(self) -> None:
        assert round_1dp(0.25) == 0.3
        assert round_1dp(1.75) == 1.8
        assert round_1dp(33.333) == 33.3

    def test_negative_zero_folded(self) -> None:
        assert str(round_half_up(-0.01, 1)) == "0.0"


class TestMean:
    def test_empty_is_zero(self) -> None:
        assert mean([]) == 0.0

    def test_generator(self) -> None:
        assert mean(x for x in (1, 2, 3)) == 2.0


class TestPercent:
    def test_zero_whole(self) -> None:
        assert percent(5, 0) == 0.0

    def test_rounded(self) -> None:
        assert percent(2, 3) == 66.7
        assert percent(3, 3) == 100.0

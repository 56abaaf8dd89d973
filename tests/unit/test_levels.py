"""Level ladder tests: these values MUST match the mobile app."""

import pytest

from goalrewards.gamification.levels import (
    LEVEL_NAMES,
    LEVEL_UP_CREDITS,
    LEVELS,
    get_level,
    level_of,
    level_rank,
    next_threshold,
    progress_of,
)


class TestLevelOf:
    @pytest.mark.parametrize(
        "xp,expected",
        [
            (0, "bronze"),
            (499, "bronze"),
            (500, "silver"),
            (1999, "silver"),
            (2000, "gold"),
            (4999, "gold"),
            (5000, "platinum"),
            (10000, "diamond"),
            (24999, "diamond"),
            (25000, "vip_elite"),
            (1_000_000, "vip_elite"),
        ],
    )
    def test_thresholds(self, xp, expected):
        assert level_of(xp) == expected

    def test_negative_xp_is_bronze(self):
        assert level_of(-40) == "bronze"


class TestProgress:
    def test_start_of_tier(self):
        assert progress_of(500, "silver") == 0.0

    def test_middle_of_bronze(self):
        assert progress_of(250, "bronze") == pytest.approx(50.0)

    def test_top_tier_is_full(self):
        assert progress_of(25000, "vip_elite") == 100.0

    def test_clamped_below_zero(self):
        assert progress_of(-100, "bronze") == 0.0


class TestLadder:
    def test_six_tiers_in_order(self):
        assert LEVEL_NAMES == ["bronze", "silver", "gold", "platinum", "diamond", "vip_elite"]

    def test_ranges_are_contiguous(self):
        for lower, upper in zip(LEVELS, LEVELS[1:]):
            assert lower["max"] + 1 == upper["min"]

    def test_next_threshold(self):
        assert next_threshold("bronze") == 500
        assert next_threshold("diamond") == 25000
        assert next_threshold("vip_elite") is None

    def test_rank(self):
        assert level_rank("bronze") == 0
        assert level_rank("vip_elite") == 5

    def test_level_up_credits(self):
        assert LEVEL_UP_CREDITS["bronze"] == 0
        assert LEVEL_UP_CREDITS["silver"] == 25
        assert LEVEL_UP_CREDITS["vip_elite"] == 500

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown level"):
            get_level("mythic")


def test_level_is_monotonic_in_xp():
    ranks = [level_rank(level_of(xp)) for xp in range(-100, 30000, 37)]
    assert ranks == sorted(ranks)

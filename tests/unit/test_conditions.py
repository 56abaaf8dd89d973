"""Unlock condition parsing and evaluation."""

import pytest

from goalrewards.errors import InvalidArgumentError
from goalrewards.gamification.conditions import (
    CommentsCondition,
    CreditsEarnedCondition,
    LoginStreakCondition,
    ManualCondition,
    PredictionAccuracyCondition,
    PredictionCountCondition,
    PredictionTally,
    ReferralsCondition,
    XPLevelCondition,
    parse_condition,
)
from goalrewards.gamification.seed import BADGE_SEED_DATA


class TestParse:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ({"type": "referrals", "count": 5}, ReferralsCondition(count=5)),
            ({"type": "predictions", "correct_count": 1}, PredictionCountCondition(correct_count=1)),
            ({"type": "predictions", "count": 3}, PredictionCountCondition(correct_count=3)),
            (
                {"type": "predictions", "accuracy": 70, "min_count": 20},
                PredictionAccuracyCondition(accuracy=70, min_count=20),
            ),
            ({"type": "login_streak", "days": 7}, LoginStreakCondition(days=7)),
            ({"type": "comments", "count": 10}, CommentsCondition(count=10)),
            ({"type": "xp_level", "level": "gold"}, XPLevelCondition(level="gold")),
            ({"type": "credits_earned", "amount": 100}, CreditsEarnedCondition(amount=100)),
            ({"type": "manual"}, ManualCondition()),
        ],
    )
    def test_variants(self, raw, expected):
        assert parse_condition(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "referrals",
            {},
            {"type": "teleport"},
            {"type": "referrals"},
            {"type": "referrals", "count": -1},
            {"type": "referrals", "count": "5"},
            {"type": "login_streak", "days": True},
            {"type": "xp_level", "level": "mythic"},
            {"type": "predictions", "accuracy": 150},
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(InvalidArgumentError):
            parse_condition(raw)

    def test_round_trips_catalog(self):
        """Every seeded badge has a well-formed condition."""
        for badge in BADGE_SEED_DATA:
            condition = parse_condition(badge["unlock_condition"])
            assert condition.type == badge["unlock_condition"]["type"]


class TestEvaluate:
    def test_thresholds_are_inclusive(self):
        assert ReferralsCondition(count=5).is_satisfied(5)
        assert not ReferralsCondition(count=5).is_satisfied(4)
        assert LoginStreakCondition(days=3).is_satisfied(3)
        assert CommentsCondition(count=1).is_satisfied(1)
        assert CreditsEarnedCondition(amount=100).is_satisfied(100)

    def test_prediction_count_accepts_tally_or_mapping(self):
        condition = PredictionCountCondition(correct_count=1)
        assert condition.is_satisfied(PredictionTally(correct_count=1, total_count=1))
        assert condition.is_satisfied({"correct_count": 2, "total_count": 5})
        assert not condition.is_satisfied(PredictionTally(correct_count=0, total_count=3))

    def test_accuracy_needs_minimum_count(self):
        condition = PredictionAccuracyCondition(accuracy=70, min_count=20)
        assert not condition.is_satisfied(PredictionTally(correct_count=10, total_count=10))
        assert condition.is_satisfied(PredictionTally(correct_count=14, total_count=20))
        assert not condition.is_satisfied(PredictionTally(correct_count=13, total_count=20))

    def test_accuracy_with_no_predictions(self):
        assert not PredictionAccuracyCondition(accuracy=0).is_satisfied(PredictionTally(0, 0))

    def test_xp_level_is_exact(self):
        condition = XPLevelCondition(level="silver")
        assert condition.is_satisfied("silver")
        assert not condition.is_satisfied("gold")

    def test_manual_never_satisfied(self):
        assert not ManualCondition().is_satisfied(10**9)

    def test_non_numeric_value(self):
        with pytest.raises(InvalidArgumentError):
            ReferralsCondition(count=1).is_satisfied("many")

    def test_to_dict(self):
        assert PredictionAccuracyCondition(accuracy=70, min_count=20).to_dict() == {
            "type": "predictions", "accuracy": 70, "min_count": 20,
        }
        assert ManualCondition().to_dict() == {"type": "manual"}

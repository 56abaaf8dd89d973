"""Badge unlock conditions.

The catalog stores conditions as JSON tagged by ``type``. ``parse_condition``
turns that JSON into one of the frozen dataclasses below; each variant decides
for itself whether a measured value satisfies it.

    {"type": "referrals", "count": 5}
    {"type": "predictions", "correct_count": 1}
    {"type": "predictions", "accuracy": 70, "min_count": 20}
    {"type": "login_streak", "days": 7}
    {"type": "comments", "count": 10}
    {"type": "xp_level", "level": "gold"}
    {"type": "credits_earned", "amount": 1000}
    {"type": "manual"}
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Union

from goalrewards.errors import InvalidArgumentError
from goalrewards.gamification.levels import LEVEL_NAMES

CONDITION_TYPES = (
    "referrals",
    "predictions",
    "login_streak",
    "comments",
    "xp_level",
    "credits_earned",
    "manual",
)


@dataclass(frozen=True)
class PredictionTally:
    """Measured value for ``predictions`` conditions."""

    correct_count: int
    total_count: int = 0

    @classmethod
    def coerce(cls, value: Any) -> PredictionTally:
        if isinstance(value, PredictionTally):
            return value
        if isinstance(value, Mapping):
            return cls(
                correct_count=int(value.get("correct_count", 0)),
                total_count=int(value.get("total_count", 0)),
            )
        raise InvalidArgumentError(f"Expected a prediction tally, got {value!r}")


def _as_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(f"Expected a number, got {value!r}")
    return value


@dataclass(frozen=True)
class ReferralsCondition:
    type: ClassVar[str] = "referrals"
    count: int

    def is_satisfied(self, value: Any) -> bool:
        return _as_number(value) >= self.count

    def to_dict(self) -> dict:
        return {"type": self.type, "count": self.count}


@dataclass(frozen=True)
class PredictionCountCondition:
    type: ClassVar[str] = "predictions"
    correct_count: int

    def is_satisfied(self, value: Any) -> bool:
        return PredictionTally.coerce(value).correct_count >= self.correct_count

    def to_dict(self) -> dict:
        return {"type": self.type, "correct_count": self.correct_count}


@dataclass(frozen=True)
class PredictionAccuracyCondition:
    type: ClassVar[str] = "predictions"
    accuracy: float
    min_count: int = 0

    def is_satisfied(self, value: Any) -> bool:
        tally = PredictionTally.coerce(value)
        if tally.total_count <= 0:
            return False
        accuracy = tally.correct_count / tally.total_count * 100
        return accuracy >= self.accuracy and tally.total_count >= self.min_count

    def to_dict(self) -> dict:
        return {"type": self.type, "accuracy": self.accuracy, "min_count": self.min_count}


@dataclass(frozen=True)
class LoginStreakCondition:
    type: ClassVar[str] = "login_streak"
    days: int

    def is_satisfied(self, value: Any) -> bool:
        return _as_number(value) >= self.days

    def to_dict(self) -> dict:
        return {"type": self.type, "days": self.days}


@dataclass(frozen=True)
class CommentsCondition:
    type: ClassVar[str] = "comments"
    count: int

    def is_satisfied(self, value: Any) -> bool:
        return _as_number(value) >= self.count

    def to_dict(self) -> dict:
        return {"type": self.type, "count": self.count}


@dataclass(frozen=True)
class XPLevelCondition:
    """Exact tier match, not a threshold."""

    type: ClassVar[str] = "xp_level"
    level: str

    def is_satisfied(self, value: Any) -> bool:
        return value == self.level

    def to_dict(self) -> dict:
        return {"type": self.type, "level": self.level}


@dataclass(frozen=True)
class CreditsEarnedCondition:
    type: ClassVar[str] = "credits_earned"
    amount: int

    def is_satisfied(self, value: Any) -> bool:
        return _as_number(value) >= self.amount

    def to_dict(self) -> dict:
        return {"type": self.type, "amount": self.amount}


@dataclass(frozen=True)
class ManualCondition:
    """Granted only by an administrator."""

    type: ClassVar[str] = "manual"

    def is_satisfied(self, value: Any) -> bool:
        return False

    def to_dict(self) -> dict:
        return {"type": self.type}


UnlockCondition = Union[
    ReferralsCondition,
    PredictionCountCondition,
    PredictionAccuracyCondition,
    LoginStreakCondition,
    CommentsCondition,
    XPLevelCondition,
    CreditsEarnedCondition,
    ManualCondition,
]


def _require_int(raw: Mapping[str, Any], key: str) -> int:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(f"Condition '{raw.get('type')}' needs a non-negative integer '{key}'")
    return value


def parse_condition(raw: Mapping[str, Any] | None) -> UnlockCondition:
    """Parse catalog JSON into a condition. Raises InvalidArgumentError when malformed."""
    if not isinstance(raw, Mapping):
        raise InvalidArgumentError(f"Unlock condition must be an object, got {raw!r}")

    kind = raw.get("type")
    if kind == "referrals":
        return ReferralsCondition(count=_require_int(raw, "count"))
    if kind == "predictions":
        if raw.get("accuracy") is not None:
            accuracy = _as_number(raw["accuracy"])
            if not 0 <= accuracy <= 100:
                raise InvalidArgumentError("Prediction accuracy must be between 0 and 100")
            min_count = _require_int(raw, "min_count") if "min_count" in raw else 0
            return PredictionAccuracyCondition(accuracy=accuracy, min_count=min_count)
        key = "correct_count" if "correct_count" in raw else "count"
        return PredictionCountCondition(correct_count=_require_int(raw, key))
    if kind == "login_streak":
        return LoginStreakCondition(days=_require_int(raw, "days"))
    if kind == "comments":
        return CommentsCondition(count=_require_int(raw, "count"))
    if kind == "xp_level":
        level = raw.get("level")
        if level not in LEVEL_NAMES:
            raise InvalidArgumentError(f"Unknown level in xp_level condition: {level!r}")
        return XPLevelCondition(level=level)
    if kind == "credits_earned":
        return CreditsEarnedCondition(amount=_require_int(raw, "amount"))
    if kind == "manual":
        return ManualCondition()
    raise InvalidArgumentError(f"Unknown unlock condition type: {kind!r}")

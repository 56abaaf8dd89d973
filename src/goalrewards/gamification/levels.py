"""Level tiers and computation.

These values MUST match the mobile app's level table (bronze .. vip_elite).
Pure functions only; the XP service caches the result on user_xp.
"""

from __future__ import annotations

LEVELS: list[dict] = [
    {"level": "bronze", "name": "Bronze", "min": 0, "max": 499},
    {"level": "silver", "name": "Silver", "min": 500, "max": 1999},
    {"level": "gold", "name": "Gold", "min": 2000, "max": 4999},
    {"level": "platinum", "name": "Platinum", "min": 5000, "max": 9999},
    {"level": "diamond", "name": "Diamond", "min": 10000, "max": 24999},
    {"level": "vip_elite", "name": "VIP Elite", "min": 25000, "max": None},
]

LEVEL_NAMES: list[str] = [entry["level"] for entry in LEVELS]

_BY_NAME: dict[str, dict] = {entry["level"]: entry for entry in LEVELS}

# Credits granted when a positive XP grant moves a user up into the tier.
LEVEL_UP_CREDITS: dict[str, int] = {
    "bronze": 0,
    "silver": 25,
    "gold": 50,
    "platinum": 100,
    "diamond": 250,
    "vip_elite": 500,
}


def get_level(level: str) -> dict:
    """Return the tier entry for a level name."""
    try:
        return _BY_NAME[level]
    except KeyError:
        raise ValueError(f"Unknown level: {level}") from None


def level_rank(level: str) -> int:
    """Position of a tier in the ladder (bronze = 0)."""
    return LEVEL_NAMES.index(get_level(level)["level"])


def level_of(xp: int) -> str:
    """Map an XP balance to its tier. Negative balances stay bronze."""
    current = LEVELS[0]
    for entry in LEVELS:
        if xp >= entry["min"]:
            current = entry
    return current["level"]


def progress_of(xp: int, level: str) -> float:
    """Percent through the tier's XP range, clamped to [0, 100].

    The unbounded top tier always reports 100.
    """
    entry = get_level(level)
    if entry["max"] is None:
        return 100.0

    range_size = entry["max"] - entry["min"] + 1
    progress = (xp - entry["min"]) / range_size * 100
    return min(100.0, max(0.0, progress))


def next_threshold(level: str) -> int | None:
    """XP needed to enter the next tier, or None at the top."""
    rank = level_rank(level)
    if rank == len(LEVELS) - 1:
        return None
    return LEVELS[rank + 1]["min"]

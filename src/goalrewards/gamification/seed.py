"""Default badge catalog."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from goalrewards.db.models import Badge

logger = logging.getLogger(__name__)

# slug, name, description, category, rarity, unlock_condition, reward_xp, reward_credits, reward_vip_days
_CATALOG: list[tuple] = [
    # Referrals
    ("first_referral", "First Friend", "Invite your first friend", "milestone", "common",
     {"type": "referrals", "count": 1}, 50, 10, 0),
    ("social_butterfly", "Social Butterfly", "Invite 5 friends", "achievement", "rare",
     {"type": "referrals", "count": 5}, 200, 50, 0),
    ("influencer", "Influencer", "Invite 20 friends", "achievement", "epic",
     {"type": "referrals", "count": 20}, 500, 150, 3),
    ("legend_recruiter", "Legend Recruiter", "Invite 100 friends", "achievement", "legendary",
     {"type": "referrals", "count": 100}, 2000, 500, 30),
    # Predictions
    ("lucky_guess", "Lucky Guess", "Make your first correct prediction", "milestone", "common",
     {"type": "predictions", "correct_count": 1}, 25, 5, 0),
    ("prediction_master", "Prediction Master", "Make 10 correct predictions", "achievement", "rare",
     {"type": "predictions", "correct_count": 10}, 200, 50, 0),
    ("oracle", "Oracle", "Make 50 correct predictions", "achievement", "epic",
     {"type": "predictions", "correct_count": 50}, 750, 200, 7),
    ("nostradamus", "Nostradamus", "Make 200 correct predictions", "achievement", "legendary",
     {"type": "predictions", "correct_count": 200}, 3000, 1000, 30),
    ("accuracy_king", "Accuracy King", "Keep 70% accuracy over at least 20 predictions", "achievement", "epic",
     {"type": "predictions", "accuracy": 70, "min_count": 20}, 500, 150, 5),
    ("perfect_week", "Perfect Week", "Get 7 out of 7 predictions right", "achievement", "legendary",
     {"type": "predictions", "accuracy": 100, "min_count": 7}, 1000, 300, 7),
    # Login streaks
    ("streak_3", "3 Day Streak", "Log in for 3 consecutive days", "milestone", "common",
     {"type": "login_streak", "days": 3}, 30, 10, 0),
    ("streak_7", "7 Day Streak", "Log in for 7 consecutive days", "milestone", "rare",
     {"type": "login_streak", "days": 7}, 100, 30, 0),
    ("streak_14", "14 Day Streak", "Log in for 14 consecutive days", "achievement", "rare",
     {"type": "login_streak", "days": 14}, 250, 75, 1),
    ("streak_30", "30 Day Streak", "Log in for 30 consecutive days", "achievement", "epic",
     {"type": "login_streak", "days": 30}, 750, 250, 7),
    ("streak_100", "100 Day Streak", "Log in for 100 consecutive days", "achievement", "legendary",
     {"type": "login_streak", "days": 100}, 3000, 1000, 30),
    # Comments
    ("first_comment", "First Comment", "Make your first comment", "milestone", "common",
     {"type": "comments", "count": 1}, 10, 5, 0),
    ("commentator", "Commentator", "Make 50 comments", "achievement", "rare",
     {"type": "comments", "count": 50}, 150, 40, 0),
    ("active_voice", "Active Voice", "Make 200 comments", "achievement", "epic",
     {"type": "comments", "count": 200}, 500, 150, 3),
    ("community_leader", "Community Leader", "Make 1000 comments", "achievement", "legendary",
     {"type": "comments", "count": 1000}, 2000, 500, 15),
    # Levels
    ("silver_champion", "Silver Champion", "Reach Silver level", "milestone", "common",
     {"type": "xp_level", "level": "silver"}, 0, 25, 0),
    ("gold_legend", "Gold Legend", "Reach Gold level", "milestone", "rare",
     {"type": "xp_level", "level": "gold"}, 0, 50, 1),
    ("platinum_master", "Platinum Master", "Reach Platinum level", "milestone", "epic",
     {"type": "xp_level", "level": "platinum"}, 0, 100, 3),
    ("diamond_elite", "Diamond Elite", "Reach Diamond level", "milestone", "epic",
     {"type": "xp_level", "level": "diamond"}, 0, 250, 7),
    ("vip_elite_god", "VIP Elite God", "Reach VIP Elite level", "milestone", "legendary",
     {"type": "xp_level", "level": "vip_elite"}, 0, 500, 30),
    # Credits
    ("credit_collector", "Credit Collector", "Earn 100 credits", "achievement", "common",
     {"type": "credits_earned", "amount": 100}, 50, 25, 0),
    ("credit_magnate", "Credit Magnate", "Earn 500 credits", "achievement", "rare",
     {"type": "credits_earned", "amount": 500}, 200, 100, 1),
    ("credit_tycoon", "Credit Tycoon", "Earn 2000 credits", "achievement", "epic",
     {"type": "credits_earned", "amount": 2000}, 750, 500, 7),
    ("billionaire", "Billionaire", "Earn 10000 credits", "achievement", "legendary",
     {"type": "credits_earned", "amount": 10000}, 3000, 2000, 30),
    # Granted by hand
    ("beta_tester", "Beta Tester", "Participate in app beta testing", "special", "epic",
     {"type": "manual"}, 500, 100, 7),
    ("founding_member", "Founding Member", "Be among the first 1000 users", "special", "legendary",
     {"type": "manual"}, 1000, 500, 30),
    ("early_adopter", "Early Adopter", "Sign up in the first month", "special", "rare",
     {"type": "manual"}, 250, 100, 3),
    ("world_cup_2026", "World Cup 2026", "Be active during the 2026 World Cup", "seasonal", "legendary",
     {"type": "manual"}, 1000, 500, 30),
]

BADGE_SEED_DATA: list[dict] = [
    {
        "slug": slug,
        "name": name,
        "description": description,
        "icon_url": f"/badges/{slug}.png",
        "category": category,
        "rarity": rarity,
        "unlock_condition": condition,
        "reward_xp": reward_xp,
        "reward_credits": reward_credits,
        "reward_vip_days": vip_days,
        "display_order": order,
    }
    for order, (slug, name, description, category, rarity, condition, reward_xp, reward_credits, vip_days)
    in enumerate(_CATALOG, start=1)
]


async def seed_badges(db: AsyncSession) -> int:
    """Insert catalog badges whose slug is not present yet. Returns the number inserted.

    Existing rows are left alone so admin edits survive restarts.
    """
    result = await db.execute(select(Badge.slug))
    existing = set(result.scalars())
    now = datetime.now(timezone.utc)

    seeded = 0
    for badge_data in BADGE_SEED_DATA:
        if badge_data["slug"] in existing:
            continue
        db.add(Badge(**badge_data, is_active=True, total_unlocks=0, created_at=now, updated_at=now))
        seeded += 1

    await db.commit()
    logger.info("Seeded %d badge definitions", seeded)
    return seeded

"""GoalGPT reward engine: XP, credits, badges, daily rewards and referrals."""

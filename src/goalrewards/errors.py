"""Domain error kinds raised by the reward engine.

Each class carries a stable ``kind`` string and the HTTP status the API
layer maps it to, so callers can branch on the kind rather than on messages.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base class for every reward-engine error."""

    kind: str = "internal"
    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NotFoundError(RewardsError, LookupError):
    kind = "not_found"
    status_code = 404


class InvalidArgumentError(RewardsError, ValueError):
    kind = "invalid_argument"
    status_code = 400


class InsufficientBalanceError(RewardsError, ValueError):
    kind = "insufficient_balance"
    status_code = 400

    def __init__(self, required: int, available: int) -> None:
        super().__init__(f"Insufficient balance. Required: {required}, Available: {available}")
        self.required = required
        self.available = available


class AlreadyClaimedError(RewardsError):
    kind = "already_claimed"
    status_code = 409


class SelfReferralError(RewardsError, ValueError):
    kind = "self_reference_not_allowed"
    status_code = 400


class DuplicateReferralError(RewardsError):
    kind = "duplicate_referral"
    status_code = 409


class InvalidReferralCodeError(NotFoundError):
    kind = "invalid_referral_code"
    status_code = 404


class ExpiredError(RewardsError):
    kind = "expired"
    status_code = 410

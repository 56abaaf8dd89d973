"""Error kinds and HTTP statuses."""

import pytest

from goalrewards.errors import (
    AlreadyClaimedError,
    DuplicateReferralError,
    ExpiredError,
    InsufficientBalanceError,
    InvalidArgumentError,
    InvalidReferralCodeError,
    NotFoundError,
    RewardsError,
    SelfReferralError,
)


@pytest.mark.parametrize(
    "error,kind,status",
    [
        (NotFoundError("x"), "not_found", 404),
        (InvalidArgumentError("x"), "invalid_argument", 400),
        (InsufficientBalanceError(required=10, available=5), "insufficient_balance", 400),
        (AlreadyClaimedError("x"), "already_claimed", 409),
        (SelfReferralError("x"), "self_reference_not_allowed", 400),
        (DuplicateReferralError("x"), "duplicate_referral", 409),
        (InvalidReferralCodeError("x"), "invalid_referral_code", 404),
        (ExpiredError("x"), "expired", 410),
    ],
)
def test_kinds(error, kind, status):
    assert isinstance(error, RewardsError)
    assert error.kind == kind
    assert error.status_code == status


def test_insufficient_balance_carries_amounts():
    error = InsufficientBalanceError(required=10, available=5)
    assert error.required == 10
    assert error.available == 5
    assert "Required: 10, Available: 5" in str(error)


def test_invalid_code_is_a_not_found():
    assert isinstance(InvalidReferralCodeError("x"), NotFoundError)


def test_default_message_is_kind():
    assert str(ExpiredError()) == "expired"

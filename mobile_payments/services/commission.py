"""
Commission calculator.

The platform keeps a fixed percentage of every payment. Amounts
are integer minor units and the commission is always rounded
down, so the payee never receives less than the exact share and
the split matches what the gateway reports to the cent.
"""

from typing import NamedTuple

from mobile_payments.exceptions import InvalidAmount

# 5% expressed in basis points so the split stays in integer arithmetic
COMMISSION_RATE_BPS = 500
BPS_DENOMINATOR = 10_000


class CommissionSplit(NamedTuple):
    commission_amount: int
    net_amount: int


def compute_commission(
    gross_amount: int, rate_bps: int = COMMISSION_RATE_BPS
) -> CommissionSplit:
    """
    Split ``gross_amount`` into (commission, net).

    commission = floor(gross * rate_bps / 10000)
    net        = gross - commission

    Raises InvalidAmount for non-integer or non-positive amounts,
    or when the split would leave the payee nothing.
    """
    if isinstance(gross_amount, bool) or not isinstance(gross_amount, int):
        raise InvalidAmount(
            f"Amount must be an integer number of minor units, got {gross_amount!r}"
        )
    if gross_amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {gross_amount}")
    if not 0 <= rate_bps < BPS_DENOMINATOR:
        raise InvalidAmount(f"Commission rate {rate_bps} bps is out of range")

    commission = gross_amount * rate_bps // BPS_DENOMINATOR
    net = gross_amount - commission
    if net <= 0:
        raise InvalidAmount(f"Amount {gross_amount} leaves nothing for the payee")

    return CommissionSplit(commission_amount=commission, net_amount=net)

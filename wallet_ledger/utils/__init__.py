"""Wallet Ledger utility functions."""

from wallet_ledger.utils.helpers import timestamped_code, to_amount, utc_now

__all__ = [
    "timestamped_code",
    "to_amount",
    "utc_now",
]

"""
Credits module for tube-tracker.

Usage:
    from tube_tracker.credits import CreditLedger

    ledger = CreditLedger(remote, user.id, costs=config.credits.costs)
    bundle = await ledger.metered("search", lambda: client.fetch_playlist(playlist_id))
"""

from tube_tracker.credits.ledger import REFUND_PREFIX, CreditLedger

__all__ = [
    "CreditLedger",
    "REFUND_PREFIX",
]

"""
Credit ledger for metered operations.

Every paid action (playlist search, notes, test) runs through metered():

    1. Pre-check against the cached balance. If it is known to be too low,
       raise InsufficientCreditsError without a round trip.
    2. Reserve: atomic check-and-decrement at the store. A refusal (the
       cached balance was stale) raises InsufficientCreditsError.
    3. Run the operation.
    4. If the operation raises, refund and re-raise.

A refund is a reservation of the negated cost labelled "refund_<action>".
If the refund itself cannot be recorded, the cached balance is corrected
locally and the event goes to credit_failures.log so it can be replayed.

Cancellation of the awaiting task (the user navigated away) is not a
failure: the reservation stands and no refund is made.
"""

from typing import Awaitable, Callable, TypeVar

from tube_tracker.core.config import DEFAULT_CREDIT_COSTS
from tube_tracker.core.exceptions import InsufficientCreditsError, TubeTrackerError
from tube_tracker.core.logger import get_logger, log_credit_failure
from tube_tracker.core.models import ReserveResult
from tube_tracker.remote.base import RemoteStore

logger = get_logger(__name__)

T = TypeVar("T")


REFUND_PREFIX = "refund_"


class CreditLedger:
    """
    One user's view of their credit balance.

    The cached balance is only a hint for the pre-check; the store's
    reserve operation is the single source of truth.

    Args:
        remote: Store holding the balance.
        user_id: Owner of the balance.
        costs: Action name -> cost. Defaults to DEFAULT_CREDIT_COSTS.
    """

    def __init__(
        self,
        remote: RemoteStore,
        user_id: str,
        costs: dict[str, int] | None = None
    ) -> None:
        self._remote = remote
        self.user_id = user_id
        self.costs = dict(costs if costs is not None else DEFAULT_CREDIT_COSTS)
        self._balance: int | None = None

    @property
    def balance(self) -> int | None:
        """Last known balance, or None before the first read."""
        return self._balance

    def cost_of(self, action: str) -> int:
        try:
            return self.costs[action]
        except KeyError:
            raise TubeTrackerError(
                f"No cost configured for action '{action}'",
                details={"action": action}
            ) from None

    async def refresh_balance(self) -> int:
        """Read the authoritative balance and cache it."""
        balance = await self._remote.get_credits(self.user_id)
        self._balance = balance.credits
        return self._balance

    async def reserve(self, cost: int, action_label: str) -> ReserveResult:
        """
        Atomically reserve `cost` credits (negative cost refunds).

        Store errors propagate unchanged.
        """
        result = await self._remote.reserve_credits(self.user_id, cost, action_label)
        self._balance = result.new_balance
        return result

    async def refund(self, cost: int, action_label: str) -> None:
        """
        Return `cost` credits for a failed action.

        Never raises for store failures: the cached balance is incremented
        and the failure is written to the credit failure report instead.
        """
        label = f"{REFUND_PREFIX}{action_label}"
        try:
            result = await self.reserve(-cost, label)
        except TubeTrackerError as e:
            self._credit_locally(cost)
            log_credit_failure(logger, self.user_id, label, cost, str(e))
            return

        if not result.success:
            self._credit_locally(cost)
            log_credit_failure(
                logger, self.user_id, label, cost, result.message or "refund refused"
            )
            return

        logger.info(f"Refunded {cost} credits for failed {action_label}")

    def _credit_locally(self, cost: int) -> None:
        if self._balance is not None:
            self._balance += cost

    async def metered(self, action: str, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run `operation` paid for with the cost of `action`.

        Args:
            action: Cost table key ("search", "notes", "test").
            operation: Zero-argument coroutine function doing the paid work.

        Returns:
            Whatever operation returns.

        Raises:
            InsufficientCreditsError: Before any work is done, if the balance
                                      cannot cover the cost.
            Exception: Anything operation raises, after the refund.
        """
        cost = self.cost_of(action)
        if cost <= 0:
            return await operation()

        if self._balance is not None and self._balance < cost:
            raise InsufficientCreditsError(
                f"Not enough credits for {action}: need {cost}, have {self._balance}",
                required=cost,
                available=self._balance,
                details={"action": action}
            )

        result = await self.reserve(cost, action)
        if not result.success:
            raise InsufficientCreditsError(
                result.message or f"Not enough credits for {action}",
                required=cost,
                available=result.new_balance,
                details={"action": action}
            )

        try:
            return await operation()
        except Exception:
            await self.refund(cost, action)
            raise

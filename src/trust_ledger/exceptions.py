"""Custom exceptions for the trust ledger.

Integrity errors abort processing of a single position only; callers
(reconciler, report composer, orchestrator) catch ``IntegrityError`` per
position and keep going. Every exception lives here to avoid circular
imports between the ledger, PnL and reporting modules.
"""


class LedgerError(Exception):
    """Base exception for all trust ledger errors."""


class IntegrityError(LedgerError):
    """Base for data-integrity violations on a single position."""

    def __init__(self, message: str, position_id: str | None = None) -> None:
        super().__init__(message)
        self.position_id = position_id


class BalanceUnderflow(IntegrityError):
    """Raised when a SELL/TRANSFER_OUT exceeds the known position balance."""

    def __init__(
        self,
        position_id: str | None,
        balance: int,
        amount: int,
    ) -> None:
        super().__init__(
            f"Outflow of {amount} exceeds balance {balance} "
            f"on position {position_id}",
            position_id=position_id,
        )
        self.balance = balance
        self.amount = amount


class PositionClosed(IntegrityError):
    """Raised when a transaction is applied to a CLOSED position."""

    def __init__(self, position_id: str | None) -> None:
        super().__init__(
            f"Position {position_id} is closed and cannot be mutated",
            position_id=position_id,
        )


class SimulationMismatch(IntegrityError):
    """Raised when simulated and real activity are mixed on one position."""


class BalanceMismatch(IntegrityError):
    """Raised when the replayed transaction balance disagrees with the stored one."""

    def __init__(self, position_id: str, stored: int, replayed: int) -> None:
        super().__init__(
            f"Position {position_id} stores balance {stored} "
            f"but its transactions replay to {replayed}",
            position_id=position_id,
        )
        self.stored = stored
        self.replayed = replayed


class InvalidTransaction(IntegrityError):
    """Raised when a transaction is malformed or belongs to another position."""


class DataGap(LedgerError):
    """Raised when expected market data is missing or timed out.

    Always recovered by the aggregator; never escapes to report callers.
    """


class ActorNotFound(LedgerError):
    """Raised when no entity record exists for the requested actor."""

    def __init__(self, actor_id: str) -> None:
        super().__init__(f"No entity found for actor {actor_id}")
        self.actor_id = actor_id


class StoreUnavailable(LedgerError):
    """Raised when a store read times out or fails. Retried by the caller's policy."""

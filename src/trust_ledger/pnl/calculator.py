"""Realized and unrealized P&L using weighted-average cost.

Every BUY / TRANSFER_IN blends into a single running average price:

    avg = (avg * balance + amount * price) / (balance + amount)

Every SELL / TRANSFER_OUT realizes ``(price - avg) * amount`` and reduces
the balance without touching ``avg``. After the walk:

    unrealized    = (current_price - avg) * remaining_balance
    current_value = current_price * remaining_balance

When the current price is unknown, unrealized and current_value are None
("unknown"), never zero: zero would report an open position as worthless.

CRITICAL: All arithmetic uses Decimal under a local context. Average cost
is quantized to ``PnLSettings.scale`` fractional digits (at least 8) so
rounding error cannot compound across many small trades.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Context, Decimal, localcontext

from trust_ledger.config import PnLSettings
from trust_ledger.exceptions import BalanceUnderflow
from trust_ledger.models import Position, Transaction

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PnLResult:
    """P&L breakdown for one position.

    ``unrealized`` and ``current_value`` are None when the current price
    is unknown.
    """

    realized: Decimal
    unrealized: Decimal | None
    current_value: Decimal | None
    avg_cost: Decimal
    remaining_balance: int
    cost_of_sold: Decimal  # avg cost basis of everything sold / sent out
    realized_pct: Decimal  # realized / cost_of_sold * 100, 0 when nothing sold
    price_change_pct: Decimal | None  # current vs. the position's initial price

    @property
    def total(self) -> Decimal | None:
        if self.unrealized is None:
            return None
        return self.realized + self.unrealized


def _quantum(scale: int) -> Decimal:
    return Decimal(1).scaleb(-scale)


def compute_pnl(
    position: Position,
    ordered_txs: list[Transaction],
    current_price: Decimal | None,
    settings: PnLSettings | None = None,
) -> PnLResult:
    """Compute P&L for a position from its timestamp-ordered transactions.

    Args:
        position: The position (used for its initial price and id).
        ordered_txs: Transactions ordered by timestamp ascending.
        current_price: Latest market price, or None when unavailable.
        settings: Decimal scale/precision. Defaults to PnLSettings().

    Returns:
        PnLResult with realized, unrealized and current value.

    Raises:
        BalanceUnderflow: If an outflow exceeds the running balance.
    """
    settings = settings or PnLSettings()
    quantum = _quantum(settings.scale)
    ctx = Context(prec=settings.precision, rounding=ROUND_HALF_EVEN)

    with localcontext(ctx):
        balance = 0
        avg_cost = _ZERO
        realized = _ZERO
        cost_of_sold = _ZERO

        for tx in ordered_txs:
            amount = Decimal(tx.amount)
            if tx.type.is_inflow:
                new_balance = balance + tx.amount
                if new_balance == 0:
                    # Zero-amount inflow onto an empty position
                    avg_cost = _ZERO
                else:
                    avg_cost = (
                        (avg_cost * Decimal(balance) + amount * tx.price)
                        / Decimal(new_balance)
                    ).quantize(quantum)
                balance = new_balance
            else:
                if tx.amount > balance:
                    raise BalanceUnderflow(position.id, balance, tx.amount)
                realized += (tx.price - avg_cost) * amount
                cost_of_sold += avg_cost * amount
                balance -= tx.amount

        remaining = Decimal(balance)
        if current_price is None:
            unrealized = None
            current_value = None
        else:
            unrealized = (current_price - avg_cost) * remaining
            current_value = current_price * remaining

        if cost_of_sold > _ZERO:
            realized_pct = (realized / cost_of_sold * _HUNDRED).quantize(quantum)
        else:
            realized_pct = _ZERO

        if current_price is not None and position.initial_price > _ZERO:
            price_change_pct = (
                (current_price - position.initial_price)
                / position.initial_price
                * _HUNDRED
            ).quantize(quantum)
        else:
            price_change_pct = None

    return PnLResult(
        realized=realized,
        unrealized=unrealized,
        current_value=current_value,
        avg_cost=avg_cost,
        remaining_balance=balance,
        cost_of_sold=cost_of_sold,
        realized_pct=realized_pct,
        price_change_pct=price_change_pct,
    )

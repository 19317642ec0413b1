"""Tests for portfolio report composition.

Tests verify:
- Totals equal the sum over included positions
- Unknown price positions are listed but excluded from totals
- Integrity errors are recorded per position, never raised
- One token report per (chain, address)
- to_json is byte-identical for equal inputs
- Every decimal renders as text
"""

import json
from decimal import Context, Decimal, localcontext

from trust_ledger.models import TransactionType
from trust_ledger.report.composer import UNKNOWN, compose, decimal_text


class TestDecimalText:
    """Tests for decimal_text."""

    def test_unknown(self) -> None:
        assert decimal_text(None) == "unknown"

    def test_plain_notation(self) -> None:
        assert decimal_text(Decimal("1.2300")) == "1.23"
        assert decimal_text(Decimal("1E+3")) == "1000"
        assert decimal_text(Decimal("0.000")) == "0"
        assert decimal_text(Decimal("100")) == "100"
        assert decimal_text(Decimal("-0.5000")) == "-0.5"

    def test_keeps_every_digit(self) -> None:
        value = Decimal("123456789012345.123456789012345678")
        assert decimal_text(value) == "123456789012345.123456789012345678"
        assert Decimal(decimal_text(value)) == value


class TestCompose:
    """Tests for compose."""

    def _scenario(self, make_position, make_tx):
        positions = [
            make_position(id="p1", token_address="A", balance=600),
            make_position(id="p2", token_address="B", balance=100),
        ]
        transactions = [
            make_tx("t1", TransactionType.BUY, 1000, "1.00", position_id="p1", minute=0),
            make_tx("t2", TransactionType.SELL, 400, "1.50", position_id="p1", minute=1),
            make_tx("t3", TransactionType.BUY, 100, "3.00", position_id="p2", minute=2),
        ]
        return positions, transactions

    def test_totals_match_included_positions(self, make_position, make_tx, make_token) -> None:
        positions, transactions = self._scenario(make_position, make_tx)
        tokens = [make_token("2.00", address="A"), make_token("2.00", address="B")]

        report = compose(tokens, positions, transactions)

        assert report.total_realized_pnl == Decimal("200")
        assert report.total_unrealized_pnl == Decimal("600") + Decimal("-100")
        assert report.total_current_value == Decimal("1200") + Decimal("200")
        assert report.total_pnl == report.total_realized_pnl + report.total_unrealized_pnl

        included = [r for r in report.position_reports if r.included_in_totals]
        assert sum(r.pnl.current_value for r in included) == report.total_current_value

    def test_unknown_price_excluded_from_totals(
        self, make_position, make_tx, make_token
    ) -> None:
        positions, transactions = self._scenario(make_position, make_tx)
        tokens = [make_token("2.00", address="A"), make_token(None, address="B")]

        report = compose(tokens, positions, transactions)

        p2 = report.position_reports[1]
        assert p2.included_in_totals is False
        assert p2.to_dict()["unrealized_pnl"] == UNKNOWN
        assert p2.to_dict()["current_value"] == UNKNOWN
        assert report.total_current_value == Decimal("1200")
        assert report.total_unrealized_pnl == Decimal("600")

    def test_missing_token_becomes_gap(self, make_position, make_tx) -> None:
        positions, transactions = self._scenario(make_position, make_tx)

        report = compose([], positions, transactions)

        assert all(not t.token.has_market_data for t in report.token_reports)
        assert report.total_current_value == Decimal("0")
        assert len(report.position_reports) == 2

    def test_integrity_error_recorded(self, make_position, make_tx, make_token) -> None:
        positions = [
            make_position(id="bad", token_address="A", balance=50),
            make_position(id="good", token_address="A", balance=100),
        ]
        transactions = [
            make_tx("t1", TransactionType.BUY, 100, "1.00", position_id="bad"),
            make_tx("t2", TransactionType.BUY, 100, "1.00", position_id="good"),
        ]

        report = compose([make_token("1.50", address="A")], positions, transactions)

        bad, good = report.position_reports
        assert bad.pnl is None
        assert bad.error == "BalanceMismatch"
        assert bad.to_dict()["realized_pnl"] == UNKNOWN
        assert good.error is None
        assert report.total_unrealized_pnl == Decimal("50")

    def test_one_token_report_per_token(self, make_position, make_token) -> None:
        positions = [
            make_position(id="p1", token_address="A"),
            make_position(id="p2", token_address="A"),
            make_position(id="p3", chain="base", token_address="A"),
        ]

        report = compose([make_token("1", address="A")], positions, [])

        assert [(t.token.chain, t.position_count) for t in report.token_reports] == [
            ("solana", 2),
            ("base", 1),
        ]

    def test_positions_with_balance(self, make_position, make_tx, make_token) -> None:
        positions = [
            make_position(id="held", token_address="A", balance=100),
            make_position(id="empty", token_address="A"),
        ]
        transactions = [
            make_tx("t1", TransactionType.BUY, 100, "1.00", position_id="held"),
        ]

        report = compose([make_token("1", address="A")], positions, transactions)

        assert [r.position.id for r in report.positions_with_balance] == ["held"]

    def test_to_json_is_idempotent(self, make_position, make_tx, make_token) -> None:
        positions, transactions = self._scenario(make_position, make_tx)
        tokens = [make_token("2.00", address="A"), make_token("2.00", address="B")]

        first = compose(tokens, positions, transactions).to_json()
        second = compose(tokens, positions, transactions).to_json()

        assert first == second

    def test_decimals_render_as_text(self, make_position, make_tx, make_token) -> None:
        positions, transactions = self._scenario(make_position, make_tx)
        tokens = [make_token("2.00", address="A"), make_token("2.00", address="B")]

        payload = json.loads(compose(tokens, positions, transactions).to_json())

        assert payload["total_realized_pnl"] == "200"
        assert payload["position_reports"][0]["unrealized_pnl"] == "600"
        assert payload["position_reports"][0]["balance"] == "600"
        assert payload["positions_with_balance"] == ["p1", "p2"]

    def test_totals_exact_beyond_default_precision(
        self, make_position, make_tx, make_token
    ) -> None:
        """Smallest-unit balances times 18-place costs exceed 28 digits; totals stay exact."""
        balance = 3_000_000_000_000_001
        positions = [
            make_position(id="p1", token_address="A", balance=balance),
            make_position(id="p2", token_address="A", balance=balance),
        ]
        transactions = []
        for pid in ("p1", "p2"):
            transactions += [
                make_tx(f"{pid}-a", TransactionType.BUY, 1_000_000_000_000_001, "1.00",
                        position_id=pid, minute=0),
                make_tx(f"{pid}-b", TransactionType.BUY, 2_000_000_000_000_000, "0",
                        position_id=pid, minute=1),
            ]

        report = compose(
            [make_token("1.123456789012345678", address="A")], positions, transactions
        )

        with localcontext(Context(prec=100)):
            expected_unrealized = sum(
                (r.pnl.unrealized for r in report.position_reports), Decimal("0")
            )
            expected_value = sum(
                (r.pnl.current_value for r in report.position_reports), Decimal("0")
            )
        assert len(expected_unrealized.as_tuple().digits) > 28
        assert report.total_unrealized_pnl == expected_unrealized
        assert report.total_current_value == expected_value
        assert report.total_pnl == expected_unrealized

        payload = json.loads(report.to_json())
        assert Decimal(payload["total_unrealized_pnl"]) == expected_unrealized
        assert Decimal(payload["total_current_value"]) == expected_value

import unittest
from datetime import date
from decimal import Decimal

from ledger_engine.models import Account, Lot, StockPrice, StockTrade
from ledger_engine.position_engine import (
    compute_positions,
    compute_realized_gain_in_period,
    compute_realized_pnl_by_trade,
    consume_lots,
    replay_lots,
    sort_trades,
)
from ledger_engine.tickers import canonical_ticker, instrument_currency, is_foreign_ticker


def trade(
    trade_id: str,
    side: str,
    quantity: str,
    price: str,
    trade_date: date | None = date(2024, 1, 10),
    ticker: str = "005930",
    account_id: str = "isa",
) -> StockTrade:
    total = Decimal(quantity) * Decimal(price)
    return StockTrade(
        id=trade_id,
        date=trade_date,
        account_id=account_id,
        ticker=ticker,
        side=side,
        quantity=Decimal(quantity),
        price=Decimal(price),
        total_amount=total,
        cash_impact=-total if side == "buy" else total,
    )


class PositionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.accounts = [Account(id="isa", name="Brokerage", type="securities")]

    def test_buy_then_partial_sell_values_remaining_shares(self) -> None:
        trades = [
            trade("b1", "buy", "10", "10", date(2024, 1, 2), ticker="X"),
            trade("s1", "sell", "4", "15", date(2024, 1, 9), ticker="X"),
        ]
        prices = [StockPrice(ticker="X", price=Decimal("20"))]

        positions = compute_positions(trades, prices, self.accounts)

        self.assertEqual(len(positions), 1)
        position = positions[0]
        self.assertEqual(position.quantity, Decimal("6"))
        self.assertEqual(position.avg_cost, Decimal("10"))
        self.assertEqual(position.market_value, Decimal("120"))
        self.assertEqual(position.pnl, Decimal("60"))

    def test_sells_consume_oldest_lots_first(self) -> None:
        trades = [
            trade("b1", "buy", "10", "100", date(2024, 1, 2)),
            trade("b2", "buy", "5", "200", date(2024, 1, 3)),
            trade("s1", "sell", "12", "250", date(2024, 1, 4)),
        ]

        positions = compute_positions(trades, [StockPrice(ticker="005930", price=Decimal("210"))], self.accounts)

        self.assertEqual(positions[0].quantity, Decimal("3"))
        self.assertEqual(positions[0].avg_cost, Decimal("200"))
        self.assertEqual(positions[0].cost_basis, Decimal("600"))
        self.assertEqual(positions[0].currency, "KRW")

    def test_trades_are_replayed_in_date_order(self) -> None:
        trades = [
            trade("s1", "sell", "12", "250", date(2024, 1, 4)),
            trade("b2", "buy", "5", "200", date(2024, 1, 3)),
            trade("b1", "buy", "10", "100", date(2024, 1, 2)),
        ]

        positions = compute_positions(trades, [], self.accounts)

        self.assertEqual(positions[0].quantity, Decimal("3"))
        self.assertEqual(positions[0].avg_cost, Decimal("200"))

    def test_oversold_position_is_dropped(self) -> None:
        trades = [
            trade("b1", "buy", "2", "100", date(2024, 1, 2)),
            trade("s1", "sell", "5", "120", date(2024, 1, 3)),
        ]

        with self.assertLogs("ledger_engine.position_engine", level="WARNING"):
            positions = compute_positions(trades, [], self.accounts)

        self.assertEqual(positions, [])

    def test_buy_after_oversell_starts_fresh(self) -> None:
        trades = [
            trade("s1", "sell", "5", "120", date(2024, 1, 1)),
            trade("b1", "buy", "2", "100", date(2024, 1, 2)),
        ]

        with self.assertLogs("ledger_engine.position_engine", level="WARNING"):
            positions = compute_positions(trades, [], self.accounts)

        self.assertEqual(positions[0].quantity, Decimal("2"))

    def test_missing_price_uses_cost_basis_only_when_asked(self) -> None:
        trades = [trade("b1", "buy", "4", "25")]

        without = compute_positions(trades, [], self.accounts)
        with_fallback = compute_positions(trades, [], self.accounts, cost_basis_fallback=True)

        self.assertEqual(without[0].market_value, Decimal("0"))
        self.assertEqual(with_fallback[0].market_value, Decimal("100"))
        self.assertEqual(with_fallback[0].pnl, Decimal("0"))

    def test_foreign_position_is_converted_but_keeps_its_currency(self) -> None:
        trades = [trade("b1", "buy", "2", "150", ticker="AAPL")]
        prices = [StockPrice(ticker="AAPL", price=Decimal("200"), currency="USD")]

        positions = compute_positions(trades, prices, self.accounts, fx_rate=Decimal("1300"))

        self.assertEqual(positions[0].currency, "USD")
        self.assertEqual(positions[0].market_value, Decimal("520000"))
        self.assertEqual(positions[0].avg_cost, Decimal("195000"))
        self.assertEqual(positions[0].market_price, Decimal("260000"))

    def test_matches_prices_across_ticker_spellings(self) -> None:
        trades = [trade("b1", "buy", "1", "50", ticker="5930")]
        prices = [StockPrice(ticker="005930.KS", price=Decimal("70"), name="Samsung")]

        positions = compute_positions(trades, prices, self.accounts)

        self.assertEqual(positions[0].market_value, Decimal("70"))
        self.assertEqual(positions[0].name, "Samsung")

    def test_positions_are_split_per_account(self) -> None:
        accounts = self.accounts + [Account(id="irp", name="Pension", type="securities")]
        trades = [
            trade("b2", "buy", "3", "10", account_id="irp"),
            trade("b1", "buy", "1", "10", account_id="isa"),
        ]

        positions = compute_positions(trades, [], accounts)

        self.assertEqual([p.account_id for p in positions], ["irp", "isa"])
        self.assertEqual([p.account_name for p in positions], ["Pension", "Brokerage"])

    def test_replay_is_deterministic(self) -> None:
        trades = [
            trade("b1", "buy", "3", "33.33", date(2024, 1, 1)),
            trade("b2", "buy", "7", "12.5", date(2024, 1, 2)),
            trade("s1", "sell", "4", "40", date(2024, 1, 3)),
        ]
        prices = [StockPrice(ticker="005930", price=Decimal("41"))]

        self.assertEqual(
            compute_positions(trades, prices, self.accounts),
            compute_positions(trades, prices, self.accounts),
        )


class LotTests(unittest.TestCase):
    def test_lot_quantity_is_conserved(self) -> None:
        ordered = [
            trade("b1", "buy", "10", "1", date(2024, 1, 1)),
            trade("b2", "buy", "5", "2", date(2024, 1, 2)),
            trade("s1", "sell", "7", "3", date(2024, 1, 3)),
            trade("b3", "buy", "1", "4", date(2024, 1, 4)),
        ]

        lots, _ = replay_lots(ordered)

        self.assertEqual(sum(lot.quantity for lot in lots), Decimal("9"))
        self.assertTrue(all(lot.quantity > 0 for lot in lots))

    def test_consume_lots_reports_unfilled_quantity(self) -> None:
        lots = [Lot(quantity=Decimal("2"), total_cost=Decimal("20"))]

        consumed, unfilled = consume_lots(lots, Decimal("3"))

        self.assertEqual(consumed, Decimal("20"))
        self.assertEqual(unfilled, Decimal("1"))
        self.assertEqual(lots, [])

    def test_undated_trades_sort_last(self) -> None:
        ordered = sort_trades(
            [
                trade("x", "buy", "1", "1", None),
                trade("b", "buy", "1", "1", date(2024, 1, 2)),
                trade("a", "buy", "1", "1", date(2024, 1, 1)),
            ]
        )

        self.assertEqual([t.id for t in ordered], ["a", "b", "x"])

    def test_realized_pnl_uses_fifo_cost(self) -> None:
        trades = [
            trade("b1", "buy", "10", "100", date(2024, 1, 2)),
            trade("b2", "buy", "5", "200", date(2024, 1, 3)),
            trade("s1", "sell", "12", "250", date(2024, 2, 4)),
        ]

        realized = compute_realized_pnl_by_trade(trades)

        self.assertEqual(realized, {"s1": Decimal("1600")})
        self.assertEqual(
            compute_realized_gain_in_period(trades, date(2024, 2, 1), date(2024, 2, 29)),
            Decimal("1600"),
        )
        self.assertEqual(
            compute_realized_gain_in_period(trades, date(2024, 1, 1), date(2024, 1, 31)),
            Decimal("0"),
        )
        self.assertEqual(
            compute_realized_gain_in_period(
                trades, date(2024, 2, 1), date(2024, 2, 29), account_ids={"other"}
            ),
            Decimal("0"),
        )


class TickerTests(unittest.TestCase):
    def test_canonical_ticker(self) -> None:
        self.assertEqual(canonical_ticker("005930.KS"), "005930")
        self.assertEqual(canonical_ticker("5930"), "005930")
        self.assertEqual(canonical_ticker(" aapl "), "AAPL")
        self.assertEqual(canonical_ticker(None), "")

    def test_instrument_currency_precedence(self) -> None:
        usd_account = Account(id="us", name="US", type="securities", currency="USD")
        price = StockPrice(ticker="VOO", price=Decimal("1"), currency="krw")

        self.assertTrue(is_foreign_ticker("MSFT"))
        self.assertFalse(is_foreign_ticker("069500"))
        self.assertEqual(instrument_currency("069500", usd_account), "USD")
        self.assertEqual(instrument_currency("VOO", usd_account, price), "KRW")
        self.assertEqual(instrument_currency("069500"), "KRW")


if __name__ == "__main__":
    unittest.main()

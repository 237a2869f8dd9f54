"""
Portfolio Ledger

Turns the trade log into a portfolio. The ledger keeps no state of its own:
every valuation replays the whole log from the starting cash, in log order,
so the portfolio is always a pure function of the trades and cannot drift.

Rules:
- A buy costs quantity * price and is applied only if cash covers it. The
  position's cost basis becomes the weighted average of old and new shares.
- A sell credits quantity * price and is applied only if the position holds
  at least that many shares. Average cost is unchanged; a position that
  reaches zero shares is removed.
- Trades that break those rules are not applied. They come back in
  ``LedgerResult.rejected`` with a reason instead of vanishing.

Example usage:
    result = PortfolioLedger.apply(trades, starting_cash=100000, latest_price=160.0)
    result.portfolio.total_value
    result.rejected
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from ..models.portfolio import (
    LedgerResult, Portfolio, Position, RejectedTrade, RejectionReason, Trade, TradeSide,
)

logger = logging.getLogger(__name__)

def initial_portfolio(starting_cash: float) -> Portfolio:
    """An empty portfolio holding only cash"""
    return Portfolio(cash=starting_cash, positions={}, total_value=starting_cash, total_pnl=0.0)

class PortfolioLedger:
    """
    Replays trades against a starting cash balance
    """

    @staticmethod
    def apply(
        trades: Sequence[Trade],
        starting_cash: float,
        latest_price: float,
        prices: Optional[Mapping[str, float]] = None
    ) -> LedgerResult:
        """
        Replay ``trades`` in order and value what is left.

        Args:
            trades: The trade log, oldest first
            starting_cash: Cash before the first trade
            latest_price: Price used to value open positions
            prices: Optional per-symbol prices that override latest_price

        Returns:
            LedgerResult with the portfolio and the trades that were rejected
        """
        cash = starting_cash
        holdings: Dict[str, Dict[str, float]] = {}
        rejected: List[RejectedTrade] = []

        for trade in trades:
            if trade.side == TradeSide.BUY:
                cost = trade.quantity * trade.price
                if cash < cost:
                    rejected.append(RejectedTrade(
                        trade=trade,
                        reason=RejectionReason.INSUFFICIENT_CASH,
                        message=f"Buying {trade.quantity} {trade.symbol} costs {cost:.2f}, only {cash:.2f} cash available",
                    ))
                    continue

                cash -= cost
                holding = holdings.setdefault(trade.symbol, {'quantity': 0, 'average_price': 0.0})
                old_quantity = holding['quantity']
                new_quantity = old_quantity + trade.quantity
                holding['average_price'] = (old_quantity * holding['average_price'] + cost) / new_quantity
                holding['quantity'] = new_quantity

            else:
                holding = holdings.get(trade.symbol)
                if holding is None:
                    rejected.append(RejectedTrade(
                        trade=trade,
                        reason=RejectionReason.NO_POSITION,
                        message=f"No {trade.symbol} position to sell",
                    ))
                    continue
                if holding['quantity'] < trade.quantity:
                    rejected.append(RejectedTrade(
                        trade=trade,
                        reason=RejectionReason.INSUFFICIENT_SHARES,
                        message=f"Cannot sell {trade.quantity} {trade.symbol}, only {holding['quantity']} held",
                    ))
                    continue

                cash += trade.quantity * trade.price
                holding['quantity'] -= trade.quantity
                if holding['quantity'] == 0:
                    del holdings[trade.symbol]

        for item in rejected:
            logger.info(f"Rejected trade {item.trade.id}: {item.message}")

        positions: Dict[str, Position] = {}
        for symbol, holding in holdings.items():
            current_price = prices[symbol] if prices and symbol in prices else latest_price
            quantity = int(holding['quantity'])
            market_value = quantity * current_price
            positions[symbol] = Position(
                symbol=symbol,
                quantity=quantity,
                average_price=holding['average_price'],
                current_price=current_price,
                market_value=market_value,
                unrealized_pnl=market_value - quantity * holding['average_price'],
            )

        total_value = cash + sum(position.market_value for position in positions.values())
        total_pnl = sum(position.unrealized_pnl for position in positions.values())

        return LedgerResult(
            portfolio=Portfolio(cash=cash, positions=positions, total_value=total_value, total_pnl=total_pnl),
            rejected=rejected,
        )
